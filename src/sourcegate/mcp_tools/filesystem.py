"""MCP tools for reading and searching files under a confined root."""

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
from sourcegate.sources.filesystem import MAX_BATCH_READ, MAX_TREE_DEPTH

_PATH_PROPERTY = {"type": "string", "default": ".", "description": "Directory relative to the root (default: root)"}


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for the filesystem adapter."""
    tools = [
        Tool(
            name="read_file",
            description="Read a text file. Binary files are reported, not returned; large files are truncated.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "File path relative to the root"},
                },
                "required": ["path"],
            },
        ),
        Tool(
            name="read_files",
            description=f"Read several files in one call (max {MAX_BATCH_READ}). Per-file errors do not fail the batch.",
            inputSchema={
                "type": "object",
                "properties": {
                    "paths": {
                        "type": "array",
                        "items": {"type": "string"},
                        "maxItems": MAX_BATCH_READ,
                        "description": "File paths relative to the root",
                    },
                },
                "required": ["paths"],
            },
        ),
        Tool(
            name="list_directory",
            description="List directory contents, optionally recursively. Common build and VCS directories are skipped.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": _PATH_PROPERTY,
                    "recursive": {"type": "boolean", "default": False, "description": "Descend into subdirectories"},
                },
            },
        ),
        Tool(
            name="search_files",
            description="Find files by glob pattern, e.g. '**/*.py'",
            inputSchema={
                "type": "object",
                "properties": {
                    "pattern": {"type": "string", "description": "Glob pattern relative to the search directory"},
                    "path": _PATH_PROPERTY,
                },
                "required": ["pattern"],
            },
        ),
        Tool(
            name="search_content",
            description="Case-insensitive text search inside files",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Text to search for"},
                    "pattern": {"type": "string", "default": "**/*", "description": "Glob restricting which files are searched"},
                    "path": _PATH_PROPERTY,
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="get_info",
            description="File or directory metadata: type, size, timestamps, permissions",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path relative to the root"},
                },
                "required": ["path"],
            },
        ),
        Tool(
            name="tree",
            description=f"Render a directory tree (max depth {MAX_TREE_DEPTH})",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": _PATH_PROPERTY,
                    "depth": {
                        "type": "integer",
                        "default": 3,
                        "minimum": 1,
                        "maximum": MAX_TREE_DEPTH,
                        "description": "Maximum depth (default 3)",
                    },
                },
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "read_file": _handle_read_file,
        "read_files": _handle_read_files,
        "list_directory": _handle_list_directory,
        "search_files": _handle_search_files,
        "search_content": _handle_search_content,
        "get_info": _handle_get_info,
        "tree": _handle_tree,
    }

    return tools, handlers


def _dir_arg(arguments: dict[str, Any]) -> tuple[str, list[TextContent] | None]:
    path = arguments.get("path")
    if err := _validate_str(path, "path"):
        return "", err
    return path or ".", None


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_read_file(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_filesystem

    path, err = _require_str(arguments, "path")
    if err:
        return err
    try:
        result = _get_filesystem().read_file(path)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"path": path, **result.to_dict()})


async def _handle_read_files(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_filesystem

    paths = arguments.get("paths")
    if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
        return _error("paths must be a list of strings", "validation_error")
    if len(paths) > MAX_BATCH_READ:
        return _error(f"At most {MAX_BATCH_READ} paths per call", "validation_error")
    return _text({"files": _get_filesystem().read_files(paths)})


async def _handle_list_directory(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_filesystem

    path, err = _dir_arg(arguments)
    if err:
        return err
    recursive = arguments.get("recursive", False)
    if err := _validate_bool(recursive, "recursive"):
        return err
    try:
        listing = _get_filesystem().list_directory(path, recursive=recursive)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text(
        {
            "path": path,
            "entries": [e.to_dict() for e in listing.items],
            "total": listing.total,
            "truncated": listing.truncated,
        }
    )


async def _handle_search_files(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_filesystem

    pattern, err = _require_str(arguments, "pattern")
    if err:
        return err
    path, err = _dir_arg(arguments)
    if err:
        return err
    try:
        found = _get_filesystem().search_files(pattern, path)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"pattern": pattern, "files": found.items, "total": found.total, "truncated": found.truncated})


async def _handle_search_content(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_filesystem

    query, err = _require_str(arguments, "query")
    if err:
        return err
    pattern = arguments.get("pattern")
    if err := _validate_str(pattern, "pattern"):
        return err
    path, err = _dir_arg(arguments)
    if err:
        return err
    try:
        found = _get_filesystem().search_content(query, pattern=pattern or "**/*", raw=path)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text(
        {
            "query": query,
            "matches": [m.to_dict() for m in found.items],
            "total": found.total,
            "truncated": found.truncated,
        }
    )


async def _handle_get_info(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_filesystem

    path, err = _require_str(arguments, "path")
    if err:
        return err
    try:
        info = _get_filesystem().get_info(path)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text(info)


async def _handle_tree(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_filesystem

    path, err = _dir_arg(arguments)
    if err:
        return err
    depth = arguments.get("depth", 3)
    if err := _validate_int_range(depth, "depth", min_val=1, max_val=MAX_TREE_DEPTH):
        return err
    try:
        rendered = _get_filesystem().tree(path, depth)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text(rendered)
