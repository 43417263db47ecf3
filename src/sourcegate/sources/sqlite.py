"""Read-mostly access to a SQLite database file.

In read-only mode (the default) the file is opened with ``mode=ro``,
``PRAGMA query_only`` is switched on, and free-text SQL must pass
:data:`~sourcegate.query_policy.SQLITE_POLICY`. Any of the three is enough
to stop a write; all three are applied.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sourcegate.errors import ResourceError
from sourcegate.query_policy import SQLITE_POLICY, QueryPolicy
from sourcegate.validation import needs_quoting, quote_identifier, validate_identifier
from sourcegate.windowing import window

logger = logging.getLogger(__name__)

MAX_SAMPLE_ROWS = 20
SEARCH_MATCHES_PER_TABLE = 10
_TEXT_TYPE_MARKERS = ("TEXT", "CHAR", "CLOB")


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str
    nullable: bool
    primary_key: bool
    default_value: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "nullable": self.nullable,
            "primary_key": self.primary_key,
            "default_value": self.default_value,
        }


@dataclass(frozen=True)
class TableInfo:
    name: str
    type: str
    columns: list[ColumnInfo] = field(default_factory=list)
    row_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "needs_quoting": needs_quoting(self.name),
            "row_count": self.row_count,
            "columns": [c.to_dict() for c in self.columns],
        }


@dataclass(frozen=True)
class QueryResult:
    columns: list[str]
    rows: list[dict[str, Any]]
    row_count: int
    truncated: bool

    def to_dict(self) -> dict[str, Any]:
        return {"columns": self.columns, "rows": self.rows, "row_count": self.row_count, "truncated": self.truncated}


@dataclass(frozen=True)
class TableMatches:
    table: str
    matches: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table, "match_count": len(self.matches), "matches": self.matches}


def _is_text_column(declared_type: str) -> bool:
    upper = declared_type.upper()
    return upper == "" or any(marker in upper for marker in _TEXT_TYPE_MARKERS)


class SqliteSource:
    """One SQLite database file. Connections are opened lazily."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        read_only: bool = True,
        max_rows: int = 100,
        policy: QueryPolicy = SQLITE_POLICY,
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.read_only = read_only
        self.max_rows = max_rows
        self.policy = policy
        self._check_same_thread = check_same_thread
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> SqliteSource:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            if self.read_only:
                uri = self.db_path.resolve().as_uri() + "?mode=ro"
                self._conn = sqlite3.connect(uri, uri=True, check_same_thread=self._check_same_thread)
                self._conn.execute("PRAGMA query_only = ON")
            else:
                self._conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=self._check_same_thread)
            self._conn.row_factory = sqlite3.Row
            logger.info("Connected to SQLite database %s (read-only: %s)", self.db_path, self.read_only)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -- catalog ------------------------------------------------------------

    def table_names(self) -> list[tuple[str, str]]:
        rows = self.conn.execute(
            "SELECT name, type FROM sqlite_master WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%' ORDER BY type, name"
        ).fetchall()
        return [(r["name"], r["type"]) for r in rows]

    def _columns(self, table: str) -> list[ColumnInfo]:
        rows = self.conn.execute(f"PRAGMA table_info({quote_identifier(table)})").fetchall()
        return [
            ColumnInfo(
                name=r["name"],
                type=r["type"],
                nullable=r["notnull"] == 0,
                primary_key=r["pk"] > 0,
                default_value=r["dflt_value"],
            )
            for r in rows
        ]

    def _table_info(self, name: str, kind: str) -> TableInfo:
        count = self.conn.execute(f"SELECT COUNT(*) FROM {quote_identifier(name)}").fetchone()[0]
        return TableInfo(name=name, type=kind, columns=self._columns(name), row_count=int(count))

    def list_tables(self) -> list[TableInfo]:
        try:
            return [self._table_info(name, kind) for name, kind in self.table_names()]
        except sqlite3.Error as e:
            raise ResourceError("list_tables", str(self.db_path), e) from e

    def describe_table(self, table: str) -> TableInfo | None:
        """Schema for *table* (matched case-insensitively), or None if absent."""
        validate_identifier(table, "table")
        try:
            for name, kind in self.table_names():
                if name.lower() == table.lower():
                    return self._table_info(name, kind)
        except sqlite3.Error as e:
            raise ResourceError("describe_table", table, e) from e
        return None

    # -- queries ------------------------------------------------------------

    def query(self, sql: str) -> QueryResult:
        """Run free-text SQL; gated by the policy when read-only."""
        if self.read_only:
            self.policy.check(sql)
        try:
            cursor = self.conn.execute(sql)
            rows = [dict(r) for r in cursor.fetchall()]
            columns = [d[0] for d in cursor.description] if cursor.description else []
        except sqlite3.Error as e:
            raise ResourceError("Query", str(self.db_path), e) from e
        result = window(rows, self.max_rows)
        return QueryResult(columns=columns, rows=result.items, row_count=result.total, truncated=result.truncated)

    def search(self, term: str, table: str | None = None) -> list[TableMatches]:
        """LIKE-search every text column, at most 10 matching rows per table."""
        if table is not None:
            validate_identifier(table, "table")
            names = [table]
        else:
            try:
                names = [name for name, _ in self.table_names()]
            except sqlite3.Error as e:
                raise ResourceError("search", str(self.db_path), e) from e

        results: list[TableMatches] = []
        for name in names:
            try:
                text_columns = [c.name for c in self._columns(name) if _is_text_column(c.type)]
                if not text_columns:
                    continue
                conditions = " OR ".join(f"{quote_identifier(c)} LIKE '%' || ? || '%'" for c in text_columns)
                sql = f"SELECT * FROM {quote_identifier(name)} WHERE {conditions} LIMIT {SEARCH_MATCHES_PER_TABLE}"
                matches = [dict(r) for r in self.conn.execute(sql, [term] * len(text_columns)).fetchall()]
            except sqlite3.Error:
                logger.debug("Skipping unsearchable table %s", name, exc_info=True)
                continue
            if matches:
                results.append(TableMatches(table=name, matches=matches))
        return results

    def sample(self, table: str, limit: int = 5) -> list[dict[str, Any]]:
        validate_identifier(table, "table")
        limit = max(1, min(limit, MAX_SAMPLE_ROWS))
        try:
            rows = self.conn.execute(f"SELECT * FROM {quote_identifier(table)} LIMIT ?", (limit,)).fetchall()
        except sqlite3.Error as e:
            raise ResourceError("Sample", table, e) from e
        return [dict(r) for r in rows]
