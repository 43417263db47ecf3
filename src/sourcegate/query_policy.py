"""Read-only gate for free-text SQL.

An allow-list on the leading keyword plus a whole-word deny-list scan.
This is deliberately not a parser: a statement obfuscated enough to hide
its verbs from a word-boundary scan will get through, which is why the
SQL sources also execute inside read-only connections/transactions.

Deny-lists differ per dialect, so each backend gets its own
:class:`QueryPolicy` value rather than sharing one constant.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_MULTI_STATEMENT_RE = re.compile(r";\s*\S")
_FIRST_WORD_RE = re.compile(r"\S+")


@dataclass(frozen=True)
class QueryVerdict:
    """Outcome of classifying one query string."""

    allowed: bool
    reason: str | None = None
    keyword: str | None = None

    @classmethod
    def allow(cls) -> QueryVerdict:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, keyword: str | None = None) -> QueryVerdict:
        return cls(allowed=False, reason=reason, keyword=keyword)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"allowed": self.allowed}
        if not self.allowed:
            data["reason"] = self.reason
            if self.keyword is not None:
                data["keyword"] = self.keyword
        return data


class QueryDeniedError(ValueError):
    """Raised by query executors when the gate denies a statement."""

    def __init__(self, verdict: QueryVerdict) -> None:
        self.verdict = verdict
        super().__init__(verdict.reason or "Query denied")


def _word_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)


@dataclass(frozen=True)
class QueryPolicy:
    """Per-dialect read-only policy.

    ``classify`` is a pure function of the query text.
    """

    name: str
    allowed_prefixes: tuple[str, ...]
    denied_keywords: tuple[str, ...]
    forbid_multiple_statements: bool = True
    _prefix_patterns: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)
    _keyword_patterns: tuple[tuple[str, re.Pattern[str]], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        prefixes = tuple(re.compile(rf"{re.escape(p.lower())}\b") for p in self.allowed_prefixes)
        keywords = tuple((k.upper(), _word_pattern(k)) for k in self.denied_keywords)
        object.__setattr__(self, "_prefix_patterns", prefixes)
        object.__setattr__(self, "_keyword_patterns", keywords)

    @property
    def prefix_description(self) -> str:
        upper = [p.upper() for p in self.allowed_prefixes]
        if len(upper) == 1:
            return upper[0]
        return ", ".join(upper[:-1]) + f" or {upper[-1]}"

    def classify(self, query: str) -> QueryVerdict:
        folded = query.strip().lower()
        if not any(p.match(folded) for p in self._prefix_patterns):
            first = _FIRST_WORD_RE.match(folded)
            got = first.group(0).upper() if first else "empty query"
            return QueryVerdict.deny(
                f"Query must start with {self.prefix_description} (got {got})",
                keyword=first.group(0).upper() if first else None,
            )

        # Scan the original text: folding is only for the prefix test.
        for keyword, pattern in self._keyword_patterns:
            if pattern.search(query):
                return QueryVerdict.deny(f"Query contains forbidden keyword: {keyword}", keyword=keyword)

        if self.forbid_multiple_statements and _MULTI_STATEMENT_RE.search(query):
            return QueryVerdict.deny("Multiple statements are not allowed")

        return QueryVerdict.allow()

    def check(self, query: str) -> None:
        """Raise :class:`QueryDeniedError` unless *query* is allowed."""
        verdict = self.classify(query)
        if not verdict.allowed:
            raise QueryDeniedError(verdict)


SQLITE_POLICY = QueryPolicy(
    name="sqlite",
    allowed_prefixes=("select", "with", "explain"),
    denied_keywords=(
        "insert",
        "update",
        "delete",
        "drop",
        "alter",
        "create",
        "attach",
        "detach",
        "replace",
        "truncate",
        "pragma",
        "vacuum",
        "reindex",
        "analyze",
    ),
)

POSTGRES_POLICY = QueryPolicy(
    name="postgres",
    allowed_prefixes=("select", "with"),
    denied_keywords=(
        "insert",
        "update",
        "delete",
        "drop",
        "alter",
        "create",
        "truncate",
        "grant",
        "revoke",
        "copy",
        "execute",
        "lock",
        "into",
    ),
)

_POLICIES: dict[str, QueryPolicy] = {p.name: p for p in (SQLITE_POLICY, POSTGRES_POLICY)}


def policy_for(dialect: str) -> QueryPolicy:
    """Return the built-in policy for *dialect* (``sqlite`` or ``postgres``)."""
    return _POLICIES[dialect.lower()]


def available_dialects() -> list[str]:
    return sorted(_POLICIES)
