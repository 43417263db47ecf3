"""Argument checks and response helpers used by every adapter's tool handlers.

Nothing here touches ``mcp_server`` state; handlers import their source
accessor from there lazily.
"""

from __future__ import annotations

import json
from typing import Any

from mcp.types import TextContent

from sourcegate.errors import ResourceError
from sourcegate.paths import AccessDeniedError
from sourcegate.query_policy import QueryDeniedError
from sourcegate.validation import InvalidIdentifierError


def _text(content: object) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _error(message: str, code: str) -> list[TextContent]:
    return _text({"error": message, "code": code})


def _error_response(exc: Exception) -> list[TextContent]:
    """Map an expected failure to a ``{"error", "code"}`` payload.

    Subclasses are checked before their bases: the three validation errors
    are all ValueErrors, and FileNotFoundError is an OSError.
    """
    if isinstance(exc, InvalidIdentifierError):
        return _error(str(exc), "invalid_identifier")
    if isinstance(exc, QueryDeniedError):
        return _error(str(exc), "query_denied")
    if isinstance(exc, AccessDeniedError):
        return _error(str(exc), "access_denied")
    if isinstance(exc, ResourceError):
        return _error(str(exc), "query_failed")
    if isinstance(exc, (FileNotFoundError, NotADirectoryError)):
        return _error(str(exc), "not_found")
    if isinstance(exc, OSError):
        return _error(f"{exc.strerror or exc}: {exc.filename}" if exc.filename else str(exc), "io_error")
    if isinstance(exc, ValueError):
        return _error(str(exc), "validation_error")
    raise exc


# Exceptions every handler converts to an error payload instead of raising.
EXPECTED_ERRORS: tuple[type[Exception], ...] = (ValueError, ResourceError, OSError)


def _validate_str(value: Any, name: str) -> list[TextContent] | None:
    """Error response unless *value* is absent or a string."""
    if value is not None and not isinstance(value, str):
        return _error(f"{name} must be a string", "validation_error")
    return None


def _require_str(arguments: dict[str, Any], name: str) -> tuple[str, list[TextContent] | None]:
    """Fetch a required non-empty string argument, or an error response."""
    value = arguments.get(name)
    if not isinstance(value, str) or not value.strip():
        return "", _error(f"{name} is required and must be a non-empty string", "validation_error")
    return value, None


def _validate_int_range(
    value: Any,
    name: str,
    min_val: int | None = None,
    max_val: int | None = None,
) -> list[TextContent] | None:
    """Error response unless *value* is absent or an int within the bounds.

    Booleans are rejected even though ``bool`` subclasses ``int``.
    """
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        return _error(f"{name} must be an integer", "validation_error")
    if min_val is not None and value < min_val:
        return _error(f"{name} must be >= {min_val}", "validation_error")
    if max_val is not None and value > max_val:
        return _error(f"{name} must be <= {max_val}", "validation_error")
    return None


def _validate_bool(value: Any, name: str) -> list[TextContent] | None:
    if value is not None and not isinstance(value, bool):
        return _error(f"{name} must be a boolean", "validation_error")
    return None
