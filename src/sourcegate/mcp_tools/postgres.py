"""MCP tools for a PostgreSQL database (``pg_`` prefixed)."""

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
    _validate_bool,
    _validate_int_range,
    _validate_str,
)
from sourcegate.sources.postgres import DEFAULT_SCHEMA

_MAX_QUERY_LIMIT = 10_000

_SCHEMA_PROPERTY = {"type": "string", "default": DEFAULT_SCHEMA, "description": f"Schema name (default {DEFAULT_SCHEMA})"}


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for the PostgreSQL adapter."""
    tools = [
        Tool(
            name="pg_list_tables",
            description="List tables and views in a schema",
            inputSchema={
                "type": "object",
                "properties": {"schema": _SCHEMA_PROPERTY},
            },
        ),
        Tool(
            name="pg_describe_table",
            description="Describe a table: columns, constraints and indexes",
            inputSchema={
                "type": "object",
                "properties": {
                    "table": {"type": "string", "description": "Table name"},
                    "schema": _SCHEMA_PROPERTY,
                },
                "required": ["table"],
            },
        ),
        Tool(
            name="pg_query",
            description="Execute a read-only SELECT/WITH query inside a READ ONLY transaction",
            inputSchema={
                "type": "object",
                "properties": {
                    "sql": {"type": "string", "description": "SQL query to execute"},
                    "limit": {
                        "type": "integer",
                        "minimum": 1,
                        "maximum": _MAX_QUERY_LIMIT,
                        "description": "Maximum rows to return (capped at the configured row limit)",
                    },
                },
                "required": ["sql"],
            },
        ),
        Tool(
            name="pg_explain",
            description="Show the execution plan for a read-only query. ANALYZE runs the query (still read-only).",
            inputSchema={
                "type": "object",
                "properties": {
                    "sql": {"type": "string", "description": "SQL query to explain"},
                    "analyze": {"type": "boolean", "default": False, "description": "Use EXPLAIN ANALYZE"},
                },
                "required": ["sql"],
            },
        ),
        Tool(
            name="pg_list_schemas",
            description="List user schemas (system schemas excluded)",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="pg_table_stats",
            description="Table size, index size and estimated row count",
            inputSchema={
                "type": "object",
                "properties": {
                    "table": {"type": "string", "description": "Table name"},
                    "schema": _SCHEMA_PROPERTY,
                },
                "required": ["table"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "pg_list_tables": _handle_list_tables,
        "pg_describe_table": _handle_describe_table,
        "pg_query": _handle_query,
        "pg_explain": _handle_explain,
        "pg_list_schemas": _handle_list_schemas,
        "pg_table_stats": _handle_table_stats,
    }

    return tools, handlers


def _schema_arg(arguments: dict[str, Any]) -> tuple[str, list[TextContent] | None]:
    schema = arguments.get("schema")
    if err := _validate_str(schema, "schema"):
        return "", err
    return schema or DEFAULT_SCHEMA, None


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_list_tables(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_postgres

    schema, err = _schema_arg(arguments)
    if err:
        return err
    try:
        tables = _get_postgres().list_tables(schema)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"schema": schema, "tables": [t.to_dict() for t in tables], "count": len(tables)})


async def _handle_describe_table(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_postgres

    table, err = _require_str(arguments, "table")
    if err:
        return err
    schema, err = _schema_arg(arguments)
    if err:
        return err
    try:
        description = _get_postgres().describe_table(table, schema)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    if description is None:
        return _error(f"Table not found: {schema}.{table}", "not_found")
    return _text(description.to_dict())


async def _handle_query(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_postgres

    sql, err = _require_str(arguments, "sql")
    if err:
        return err
    limit = arguments.get("limit")
    if err := _validate_int_range(limit, "limit", min_val=1, max_val=_MAX_QUERY_LIMIT):
        return err
    try:
        result = _get_postgres().query(sql, limit)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text(result.to_dict())


async def _handle_explain(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_postgres

    sql, err = _require_str(arguments, "sql")
    if err:
        return err
    analyze = arguments.get("analyze", False)
    if err := _validate_bool(analyze, "analyze"):
        return err
    try:
        plan = _get_postgres().explain(sql, analyze=analyze)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"plan": plan, "analyze": analyze})


async def _handle_list_schemas(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_postgres

    try:
        schemas = _get_postgres().list_schemas()
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"schemas": schemas, "count": len(schemas)})


async def _handle_table_stats(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_postgres

    table, err = _require_str(arguments, "table")
    if err:
        return err
    schema, err = _schema_arg(arguments)
    if err:
        return err
    try:
        stats = _get_postgres().table_stats(table, schema)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text(stats)
