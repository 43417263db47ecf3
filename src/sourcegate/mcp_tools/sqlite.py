"""MCP tools for browsing and querying a SQLite database."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from sourcegate.mcp_tools.common import (
    EXPECTED_ERRORS,
    _error,
    _error_response,
    _require_str,
    _text,
    _validate_int_range,
    _validate_str,
)
from sourcegate.sources.sqlite import MAX_SAMPLE_ROWS


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for the SQLite adapter."""
    tools = [
        Tool(
            name="list_tables",
            description="List all tables and views with their columns and row counts",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="describe_table",
            description="Get the schema of one table: columns, types, nullability, primary key, defaults",
            inputSchema={
                "type": "object",
                "properties": {
                    "table": {"type": "string", "description": "Table name (matched case-insensitively)"},
                },
                "required": ["table"],
            },
        ),
        Tool(
            name="query",
            description="Execute a read-only SQL query (SELECT, WITH or EXPLAIN). Results are capped at the configured row limit.",
            inputSchema={
                "type": "object",
                "properties": {
                    "sql": {"type": "string", "description": "SQL query to execute"},
                },
                "required": ["sql"],
            },
        ),
        Tool(
            name="search",
            description="Search for a term across the text columns of one table or all tables (10 matches per table)",
            inputSchema={
                "type": "object",
                "properties": {
                    "term": {"type": "string", "description": "Text to search for"},
                    "table": {"type": "string", "description": "Limit the search to this table"},
                },
                "required": ["term"],
            },
        ),
        Tool(
            name="sample",
            description="Get sample rows from a table",
            inputSchema={
                "type": "object",
                "properties": {
                    "table": {"type": "string", "description": "Table name"},
                    "limit": {
                        "type": "integer",
                        "default": 5,
                        "minimum": 1,
                        "maximum": MAX_SAMPLE_ROWS,
                        "description": f"Number of rows (default 5, max {MAX_SAMPLE_ROWS})",
                    },
                },
                "required": ["table"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "list_tables": _handle_list_tables,
        "describe_table": _handle_describe_table,
        "query": _handle_query,
        "search": _handle_search,
        "sample": _handle_sample,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_list_tables(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_sqlite

    try:
        tables = _get_sqlite().list_tables()
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"tables": [t.to_dict() for t in tables], "count": len(tables)})


async def _handle_describe_table(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_sqlite

    table, err = _require_str(arguments, "table")
    if err:
        return err
    try:
        info = _get_sqlite().describe_table(table)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    if info is None:
        return _error(f"Table not found: {table}", "not_found")
    return _text(info.to_dict())


async def _handle_query(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_sqlite

    sql, err = _require_str(arguments, "sql")
    if err:
        return err
    try:
        result = _get_sqlite().query(sql)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text(result.to_dict())


async def _handle_search(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_sqlite

    term, err = _require_str(arguments, "term")
    if err:
        return err
    table = arguments.get("table")
    if err := _validate_str(table, "table"):
        return err
    try:
        results = _get_sqlite().search(term, table or None)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"term": term, "results": [r.to_dict() for r in results], "tables_matched": len(results)})


async def _handle_sample(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_sqlite

    table, err = _require_str(arguments, "table")
    if err:
        return err
    limit = arguments.get("limit", 5)
    if err := _validate_int_range(limit, "limit", min_val=1, max_val=MAX_SAMPLE_ROWS):
        return err
    try:
        rows = _get_sqlite().sample(table, limit)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"table": table, "rows": rows, "count": len(rows)})
