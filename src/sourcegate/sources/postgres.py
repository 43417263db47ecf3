"""Read-only access to a PostgreSQL database through psycopg2.

Every call opens a short-lived connection whose session is marked
read-only, runs inside a single transaction, and rolls that transaction
back before closing. Free-text SQL must also pass
:data:`~sourcegate.query_policy.POSTGRES_POLICY` first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import psycopg2
from psycopg2.extensions import make_dsn
from psycopg2.extras import RealDictCursor

from sourcegate.errors import ResourceError
from sourcegate.query_policy import POSTGRES_POLICY, QueryPolicy
from sourcegate.sources.sqlite import QueryResult
from sourcegate.validation import needs_quoting, quote_identifier, validate_identifier
from sourcegate.windowing import window

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "public"
DEFAULT_STATEMENT_TIMEOUT_MS = 30_000

_LIST_SCHEMAS_SQL = """
    SELECT schema_name
    FROM information_schema.schemata
    WHERE left(schema_name, 3) != 'pg_'
      AND schema_name != 'information_schema'
    ORDER BY schema_name
"""

_LIST_TABLES_SQL = """
    SELECT table_name, table_type
    FROM information_schema.tables
    WHERE table_schema = %s
    ORDER BY table_name
"""

_COLUMNS_SQL = """
    SELECT column_name, data_type, is_nullable, column_default, character_maximum_length
    FROM information_schema.columns
    WHERE table_schema = %s AND table_name = %s
    ORDER BY ordinal_position
"""

_CONSTRAINTS_SQL = """
    SELECT tc.constraint_name, tc.constraint_type, kcu.column_name
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
      ON tc.constraint_name = kcu.constraint_name
     AND tc.table_schema = kcu.table_schema
    WHERE tc.table_schema = %s AND tc.table_name = %s
    ORDER BY tc.constraint_name, kcu.ordinal_position
"""

_INDEXES_SQL = """
    SELECT indexname, indexdef
    FROM pg_indexes
    WHERE schemaname = %s AND tablename = %s
    ORDER BY indexname
"""

_STATS_SQL = """
    SELECT
        pg_size_pretty(pg_total_relation_size(%(rel)s::regclass)) AS total_size,
        pg_size_pretty(pg_table_size(%(rel)s::regclass)) AS table_size,
        pg_size_pretty(pg_indexes_size(%(rel)s::regclass)) AS indexes_size,
        (SELECT reltuples::bigint FROM pg_class WHERE oid = %(rel)s::regclass) AS estimated_rows
"""


@dataclass(frozen=True)
class PostgresTable:
    schema: str
    name: str
    type: str

    def to_dict(self) -> dict[str, Any]:
        return {"schema": self.schema, "name": self.name, "type": self.type, "needs_quoting": needs_quoting(self.name)}


@dataclass(frozen=True)
class TableDescription:
    schema: str
    name: str
    columns: list[dict[str, Any]]
    constraints: list[dict[str, Any]]
    indexes: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema": self.schema,
            "name": self.name,
            "columns": self.columns,
            "constraints": self.constraints,
            "indexes": self.indexes,
        }


class PostgresSource:
    """A PostgreSQL database reached through a libpq DSN."""

    def __init__(
        self,
        dsn: str,
        *,
        max_rows: int = 100,
        policy: QueryPolicy = POSTGRES_POLICY,
        statement_timeout_ms: int = DEFAULT_STATEMENT_TIMEOUT_MS,
        connect: Callable[..., Any] = psycopg2.connect,
    ) -> None:
        self.dsn = dsn
        self.max_rows = max_rows
        self.policy = policy
        self.statement_timeout_ms = statement_timeout_ms
        self._connect = connect

    @contextmanager
    def _read_only_cursor(self, operation: str, target: str) -> Iterator[Any]:
        """Yield a cursor inside a read-only transaction that is always rolled back."""
        try:
            conn = self._connect(self.dsn, cursor_factory=RealDictCursor)
        except psycopg2.Error as e:
            raise ResourceError(operation, target, e) from e
        try:
            conn.set_session(readonly=True, autocommit=False)
            with conn.cursor() as cur:
                cur.execute(f"SET LOCAL statement_timeout = {int(self.statement_timeout_ms)}")
                yield cur
        except psycopg2.Error as e:
            raise ResourceError(operation, target, e) from e
        finally:
            try:
                conn.rollback()
            except psycopg2.Error:
                logger.debug("Rollback failed during %s", operation, exc_info=True)
            conn.close()

    def ping(self) -> None:
        """Raise ResourceError unless the server answers ``SELECT 1``."""
        with self._read_only_cursor("Connect", "PostgreSQL") as cur:
            cur.execute("SELECT 1")
            cur.fetchall()

    # -- catalog ------------------------------------------------------------

    def list_schemas(self) -> list[str]:
        with self._read_only_cursor("list_schemas", "PostgreSQL") as cur:
            cur.execute(_LIST_SCHEMAS_SQL)
            return [row["schema_name"] for row in cur.fetchall()]

    def list_tables(self, schema: str = DEFAULT_SCHEMA) -> list[PostgresTable]:
        validate_identifier(schema, "schema")
        with self._read_only_cursor("list_tables", schema) as cur:
            cur.execute(_LIST_TABLES_SQL, (schema,))
            return [PostgresTable(schema=schema, name=r["table_name"], type=r["table_type"]) for r in cur.fetchall()]

    def describe_table(self, table: str, schema: str = DEFAULT_SCHEMA) -> TableDescription | None:
        """Columns, constraints and indexes; None when the table has no columns."""
        validate_identifier(table, "table")
        validate_identifier(schema, "schema")
        with self._read_only_cursor("describe_table", f"{schema}.{table}") as cur:
            cur.execute(_COLUMNS_SQL, (schema, table))
            columns = [
                {
                    "name": r["column_name"],
                    "type": r["data_type"],
                    "nullable": r["is_nullable"] == "YES",
                    "default": r["column_default"],
                    "max_length": r["character_maximum_length"],
                }
                for r in cur.fetchall()
            ]
            if not columns:
                return None
            cur.execute(_CONSTRAINTS_SQL, (schema, table))
            constraints = [
                {"name": r["constraint_name"], "type": r["constraint_type"], "column": r["column_name"]} for r in cur.fetchall()
            ]
            cur.execute(_INDEXES_SQL, (schema, table))
            indexes = [{"name": r["indexname"], "definition": r["indexdef"]} for r in cur.fetchall()]
        return TableDescription(schema=schema, name=table, columns=columns, constraints=constraints, indexes=indexes)

    def table_stats(self, table: str, schema: str = DEFAULT_SCHEMA) -> dict[str, Any]:
        validate_identifier(table, "table")
        validate_identifier(schema, "schema")
        relation = f"{quote_identifier(schema)}.{quote_identifier(table)}"
        with self._read_only_cursor("table_stats", f"{schema}.{table}") as cur:
            cur.execute(_STATS_SQL, {"rel": relation})
            row = cur.fetchone()
        stats = dict(row) if row else {}
        return {"schema": schema, "table": table, **stats}

    # -- queries ------------------------------------------------------------

    def query(self, sql: str, limit: int | None = None) -> QueryResult:
        """Run gated SQL, returning at most ``limit`` (default ``max_rows``) rows."""
        self.policy.check(sql)
        cap = self.max_rows if limit is None else max(0, min(limit, self.max_rows))
        with self._read_only_cursor("Query", "PostgreSQL") as cur:
            cur.execute(sql)
            columns = [d[0] for d in cur.description] if cur.description else []
            rows = [dict(r) for r in cur.fetchmany(cap)] if cap and cur.description else []
            total = cur.rowcount
        result = window(rows, cap, total=total if total >= 0 else None)
        return QueryResult(columns=columns, rows=result.items, row_count=result.total, truncated=result.truncated)

    def explain(self, sql: str, analyze: bool = False) -> str:
        """The textual plan for *sql*. ``ANALYZE`` executes the query, still read-only."""
        self.policy.check(sql)
        prefix = "EXPLAIN ANALYZE " if analyze else "EXPLAIN "
        with self._read_only_cursor("Explain", "PostgreSQL") as cur:
            cur.execute(prefix + sql)
            return "\n".join(row["QUERY PLAN"] for row in cur.fetchall())


def dsn_from_env(environ: Mapping[str, str]) -> str | None:
    """``POSTGRES_URL``, else a DSN built from the ``POSTGRES_*`` parts.

    Returns None when neither a URL nor any part is set.
    """
    url = environ.get("POSTGRES_URL", "").strip()
    if url:
        return url
    parts = {
        "host": environ.get("POSTGRES_HOST", ""),
        "port": environ.get("POSTGRES_PORT", ""),
        "user": environ.get("POSTGRES_USER", ""),
        "password": environ.get("POSTGRES_PASSWORD", ""),
        "dbname": environ.get("POSTGRES_DB", ""),
    }
    present = {k: v for k, v in parts.items() if v}
    if not present:
        return None
    present.setdefault("host", "localhost")
    present.setdefault("port", "5432")
    return make_dsn(**present)
