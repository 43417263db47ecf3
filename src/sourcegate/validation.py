"""Identifier validation and quoting for dynamically assembled SQL.

Pure functions with no MCP, FastAPI or Click dependencies.

Table, column and schema names cannot be bound as query parameters, so any
name that ends up inside a statement string goes through
:func:`validate_identifier` (when it came from the caller) and always
through :func:`quote_identifier`.
"""

from __future__ import annotations

import re
from typing import Any, Literal

IdentifierKind = Literal["table", "column", "schema"]

# Plain identifiers: letter/underscore start, word characters after.
_STRICT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
# Names that are only usable when quoted (spaces, hyphens, digit-leading).
# Quotes, semicolons, parens, slashes, backslashes and control characters
# are all outside this set.
_QUOTABLE_RE = re.compile(r"[A-Za-z0-9_ -]+")


class InvalidIdentifierError(ValueError):
    """Raised when a user-supplied identifier contains disallowed characters."""

    def __init__(self, kind: str, name: object, reason: str = "contains disallowed characters") -> None:
        self.kind = kind
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid {kind} name: {reason}")


def validate_identifier(name: Any, kind: IdentifierKind = "table") -> str:
    """Return *name* unchanged if it is safe to quote into a query.

    Raises :class:`InvalidIdentifierError` otherwise. ``fullmatch`` is used
    so a trailing newline never slips through the way ``$`` would allow.
    """
    if not isinstance(name, str):
        raise InvalidIdentifierError(kind, name, "must be a string")
    if _STRICT_RE.fullmatch(name) or _QUOTABLE_RE.fullmatch(name):
        return name
    raise InvalidIdentifierError(kind, name)


def needs_quoting(name: str) -> bool:
    """True when *name* is outside the plain identifier grammar."""
    return _STRICT_RE.fullmatch(name) is None


def quote_identifier(name: str) -> str:
    """Wrap *name* in double quotes, doubling any embedded double quote.

    Total: never raises, and is applied even to names read back from the
    engine's own catalog.
    """
    return '"' + name.replace('"', '""') + '"'

