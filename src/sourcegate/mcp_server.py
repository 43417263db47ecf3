"""MCP server exposing one guarded data source as tools and resources.

One adapter per process, chosen at startup. Configuration comes from
environment variables (see :mod:`sourcegate.settings`).

Usage:
    sourcegate-mcp sqlite          # SQLITE_PATH=/path/to/app.db
    sourcegate-mcp postgres        # POSTGRES_URL=postgresql://...
    sourcegate-mcp filesystem      # FS_ROOT=/path/to/tree
    sourcegate-mcp notes           # OBSIDIAN_VAULT=/path/to/vault
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, TypeVar
from urllib.parse import quote, unquote, urlparse

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Resource, TextContent, Tool

from sourcegate.errors import ResourceError
from sourcegate.mcp_tools import filesystem as filesystem_tools
from sourcegate.mcp_tools import notes as notes_tools
from sourcegate.mcp_tools import postgres as postgres_tools
from sourcegate.mcp_tools import sqlite as sqlite_tools
from sourcegate.mcp_tools.common import _text
from sourcegate.notes import NoteVault
from sourcegate.settings import ConfigError, FilesystemSettings, NotesSettings, PostgresSettings, SqliteSettings
from sourcegate.sources.filesystem import FilesystemSource
from sourcegate.sources.postgres import PostgresSource
from sourcegate.sources.sqlite import SqliteSource

_S = TypeVar("_S")

ADAPTERS: dict[str, Callable[[], tuple[list[Tool], dict[str, Callable[..., Any]]]]] = {
    "sqlite": sqlite_tools.register,
    "postgres": postgres_tools.register,
    "filesystem": filesystem_tools.register,
    "notes": notes_tools.register,
}

# Notes resources are listed up to this many entries.
_MAX_NOTE_RESOURCES = 100

# ---------------------------------------------------------------------------
# Server setup
# ---------------------------------------------------------------------------

server = Server("sourcegate")
_adapter: str | None = None
_source: Any = None
_tools: list[Tool] = []
_handlers: dict[str, Callable[..., Any]] = {}
_logger: logging.Logger | None = None


def configure(adapter: str, source: Any) -> None:
    """Install *source* and register the adapter's tool handlers."""
    global _adapter, _source, _tools, _handlers
    if adapter not in ADAPTERS:
        msg = f"Unknown adapter: {adapter!r} (expected one of {', '.join(ADAPTERS)})"
        raise ValueError(msg)
    tools, handlers = ADAPTERS[adapter]()
    _adapter = adapter
    _source = source
    _tools = tools
    _handlers = handlers


def _get_source(kind: type[_S]) -> _S:
    if _source is None:
        msg = "Data source not initialized"
        raise RuntimeError(msg)
    if not isinstance(_source, kind):
        msg = f"Active adapter {_adapter!r} does not provide {kind.__name__}"
        raise RuntimeError(msg)
    return _source


def _get_sqlite() -> SqliteSource:
    return _get_source(SqliteSource)


def _get_postgres() -> PostgresSource:
    return _get_source(PostgresSource)


def _get_filesystem() -> FilesystemSource:
    return _get_source(FilesystemSource)


def _get_vault() -> NoteVault:
    return _get_source(NoteVault)


def build_source(adapter: str, environ: Mapping[str, str], *, check_same_thread: bool = True) -> Any:
    """Create the data source for *adapter* from environment variables.

    Raises ConfigError for missing/invalid settings or an unreachable backend.
    """
    if adapter == "sqlite":
        sqlite_settings = SqliteSettings.from_env(environ)
        return SqliteSource(
            sqlite_settings.db_path,
            read_only=sqlite_settings.read_only,
            max_rows=sqlite_settings.max_rows,
            check_same_thread=check_same_thread,
        )
    if adapter == "postgres":
        pg_settings = PostgresSettings.from_env(environ)
        pg = PostgresSource(pg_settings.dsn, max_rows=pg_settings.max_rows)
        try:
            pg.ping()
        except ResourceError as e:
            msg = f"Cannot connect to PostgreSQL: {e.cause}"
            raise ConfigError(msg) from e
        return pg
    if adapter == "filesystem":
        fs_settings = FilesystemSettings.from_env(environ)
        fs = FilesystemSource(
            fs_settings.root,
            max_file_size=fs_settings.max_file_size,
            max_results=fs_settings.max_results,
            follow_symlinks=fs_settings.follow_symlinks,
        )
        try:
            fs.check_root()
        except OSError as e:
            raise ConfigError(str(e)) from e
        return fs
    if adapter == "notes":
        notes_settings = NotesSettings.from_env(environ)
        return NoteVault(notes_settings.vault, follow_symlinks=notes_settings.follow_symlinks)
    msg = f"Unknown adapter: {adapter!r} (expected one of {', '.join(ADAPTERS)})"
    raise ConfigError(msg)


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


def _resources_for_source() -> list[Resource]:
    if isinstance(_source, SqliteSource):
        return [
            Resource(
                uri=f"sqlite://{quote(t.name, safe='')}",  # type: ignore[arg-type]
                name=t.name,
                description=f"{t.type} with {t.row_count} rows",
                mimeType="application/json",
            )
            for t in _source.list_tables()
        ]
    if isinstance(_source, FilesystemSource):
        return [
            Resource(
                uri=_source.root.as_uri(),  # type: ignore[arg-type]
                name=_source.root.name or "root",
                description=f"Root directory: {_source.root}",
                mimeType="inode/directory",
            )
        ]
    if isinstance(_source, NoteVault):
        notes = sorted(_source.cache.snapshot().notes.values(), key=lambda n: n.path)
        return [
            Resource(
                uri=f"notes://{quote(n.path)}",  # type: ignore[arg-type]
                name=n.title,
                mimeType="text/markdown",
            )
            for n in notes[:_MAX_NOTE_RESOURCES]
        ]
    return []


def read_resource_text(uri: str) -> str:
    """Resolve a resource URI against the active source. ValueError if unknown."""
    if uri.startswith("sqlite://"):
        table = unquote(uri.removeprefix("sqlite://").rstrip("/"))
        info = _get_sqlite().describe_table(table)
        if info is None:
            msg = f"Table not found: {table}"
            raise ValueError(msg)
        return json.dumps(info.to_dict(), indent=2, default=str)
    if uri.startswith("notes://"):
        path = unquote(uri.removeprefix("notes://"))
        note = _get_vault().read(path)
        if note is None:
            msg = f"Note not found: {path}"
            raise ValueError(msg)
        return note.content
    if uri.startswith("file://"):
        fs = _get_filesystem()
        target = fs.resolve(unquote(urlparse(uri).path))
        if target.is_dir():
            listing = fs.list_directory(str(target))
            return json.dumps([e.to_dict() for e in listing.items], indent=2)
        return fs.read_file(str(target)).content
    msg = f"Unknown resource: {uri}"
    raise ValueError(msg)


@server.list_resources()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_resources() -> list[Resource]:
    try:
        return _resources_for_source()
    except (ResourceError, OSError):
        (_logger or logging.getLogger(__name__)).warning("Failed to list resources", exc_info=True)
        return []


@server.read_resource()  # type: ignore[untyped-decorator,no-untyped-call]
async def read_resource(uri: Any) -> str:
    return read_resource_text(str(uri))


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_tools() -> list[Tool]:
    return list(_tools)


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
    arguments = arguments or {}
    handler = _handlers.get(name)
    if handler is None:
        return _text({"error": f"Unknown tool: {name}", "code": "unknown_tool"})
    t0 = time.monotonic()

    try:
        result: list[TextContent] = await handler(arguments)
    except Exception:
        if _logger:
            _logger.error("tool_error", extra={"adapter": _adapter, "tool": name, "args_data": arguments}, exc_info=True)
        raise
    else:
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        if _logger:
            _logger.info("tool_call", extra={"adapter": _adapter, "tool": name, "args_data": arguments, "duration_ms": duration_ms})
        return result


def create_mcp_app() -> Any:
    """Streamable-HTTP transport for the configured adapter.

    Returns ``(handler, run)``: an ASGI handler to mount at ``/mcp`` and
    the session manager's ``run`` context manager, which the host app must
    hold open for its whole lifespan. Requests arriving outside it get a
    503.
    """
    from mcp.server.streamable_http_manager import StreamableHTTPSessionManager

    session_manager = StreamableHTTPSessionManager(
        app=server,
        json_response=False,
        stateless=True,
    )

    async def _handle_mcp(scope: Any, receive: Any, send: Any) -> None:
        try:
            await session_manager.handle_request(scope, receive, send)
        except RuntimeError:
            # Session manager not started (lifespan not entered).
            from starlette.responses import JSONResponse

            resp = JSONResponse(
                {"error": "MCP session manager not initialized"},
                status_code=503,
            )
            await resp(scope, receive, send)

    return _handle_mcp, session_manager.run


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def start(adapter: str, environ: Mapping[str, str], *, check_same_thread: bool = True) -> logging.Logger:
    """Build and install the adapter's source, then set up logging.

    Prints ``Error: ...`` and exits with status 1 on a configuration error.
    """
    global _logger

    try:
        source = build_source(adapter, environ, check_same_thread=check_same_thread)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    configure(adapter, source)

    from sourcegate.logging import setup_logging
    from sourcegate.settings import log_dir_from_env

    log_dir: Path | None = log_dir_from_env(environ)
    _logger = setup_logging(log_dir)
    _logger.info("mcp_server_start", extra={"adapter": adapter, "tool": "server", "args_data": {"tools": len(_tools)}})
    return _logger


async def _run(adapter: str) -> None:
    start(adapter, os.environ)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    import asyncio

    parser = argparse.ArgumentParser(description="sourcegate MCP server (stdio)")
    parser.add_argument("adapter", choices=sorted(ADAPTERS), help="Data source to expose")
    args = parser.parse_args()

    asyncio.run(_run(args.adapter))


if __name__ == "__main__":
    main()
