"""In-memory stand-ins for a psycopg2 connection.

Responses are matched by substring against the executed SQL, first match
wins. Every statement is recorded so tests can assert on what was sent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class FakeResponse:
    needle: str
    rows: list[dict[str, Any]] = field(default_factory=list)
    columns: list[str] | None = None
    error: Exception | None = None


class FakeCursor:
    def __init__(self, conn: FakeConnection) -> None:
        self._conn = conn
        self._rows: list[dict[str, Any]] = []
        self.description: list[tuple[str, ...]] | None = None
        self.rowcount = -1

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def execute(self, sql: str, params: Any = None) -> None:
        self._conn.executed.append((sql, params))
        for response in self._conn.responses:
            if response.needle in sql:
                if response.error is not None:
                    raise response.error
                self._rows = list(response.rows)
                columns = response.columns if response.columns is not None else (list(self._rows[0]) if self._rows else [])
                self.description = [(c,) for c in columns]
                self.rowcount = len(self._rows)
                return
        self._rows = []
        self.description = None
        self.rowcount = -1

    def fetchall(self) -> list[dict[str, Any]]:
        rows, self._rows = self._rows, []
        return rows

    def fetchmany(self, size: int) -> list[dict[str, Any]]:
        rows, self._rows = self._rows[:size], self._rows[size:]
        return rows

    def fetchone(self) -> dict[str, Any] | None:
        if not self._rows:
            return None
        return self._rows.pop(0)


class FakeConnection:
    def __init__(self, responses: list[FakeResponse] | None = None) -> None:
        self.responses = responses or []
        self.executed: list[tuple[str, Any]] = []
        self.session: dict[str, Any] = {}
        self.rollbacks = 0
        self.closed = False

    def set_session(self, **kwargs: Any) -> None:
        self.session.update(kwargs)

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.closed = True

    def statements(self) -> list[str]:
        """Executed SQL, minus the per-transaction timeout setting."""
        return [sql for sql, _ in self.executed if not sql.startswith("SET LOCAL")]


class FakeConnector:
    """Callable with ``psycopg2.connect``'s shape that hands out one connection."""

    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, dsn: str, **kwargs: Any) -> FakeConnection:
        self.calls.append((dsn, kwargs))
        return self.conn
