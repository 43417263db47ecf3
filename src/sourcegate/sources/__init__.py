"""Data sources exposed through MCP tools."""

from sourcegate.sources.filesystem import FilesystemSource
from sourcegate.sources.postgres import PostgresSource, dsn_from_env
from sourcegate.sources.sqlite import QueryResult, SqliteSource

__all__ = ["FilesystemSource", "PostgresSource", "QueryResult", "SqliteSource", "dsn_from_env"]
