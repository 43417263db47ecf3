"""MCP tools for a Markdown note vault (Obsidian layout)."""

from __future__ import annotations

import re
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
from sourcegate.notes import NoteMetadata

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_MAX_RECENT_DAYS = 3650


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for the notes adapter."""
    tools = [
        Tool(
            name="search_notes",
            description="Full-text search across notes, ranked by title, tag and content matches",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search text"},
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="read_note",
            description="Read a note by vault-relative path or by title",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Note path (with or without .md) or title"},
                },
                "required": ["path"],
            },
        ),
        Tool(
            name="list_by_tag",
            description="List notes carrying a tag (frontmatter or inline #tag)",
            inputSchema={
                "type": "object",
                "properties": {
                    "tag": {"type": "string", "description": "Tag name, with or without #"},
                },
                "required": ["tag"],
            },
        ),
        Tool(
            name="recent_notes",
            description="Notes modified within the last N days, newest first",
            inputSchema={
                "type": "object",
                "properties": {
                    "days": {"type": "integer", "default": 7, "minimum": 1, "description": "Look-back window (default 7)"},
                },
            },
        ),
        Tool(
            name="daily_notes",
            description="Daily notes for a date",
            inputSchema={
                "type": "object",
                "properties": {
                    "date": {"type": "string", "description": "Date as YYYY-MM-DD (default today)"},
                },
            },
        ),
        Tool(
            name="get_backlinks",
            description="Notes that link to the given note via [[wiki links]]",
            inputSchema={
                "type": "object",
                "properties": {
                    "note": {"type": "string", "description": "Note path or title"},
                },
                "required": ["note"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "search_notes": _handle_search_notes,
        "read_note": _handle_read_note,
        "list_by_tag": _handle_list_by_tag,
        "recent_notes": _handle_recent_notes,
        "daily_notes": _handle_daily_notes,
        "get_backlinks": _handle_get_backlinks,
    }

    return tools, handlers


def _summary(note: NoteMetadata) -> dict[str, Any]:
    return {"path": note.path, "title": note.title, "tags": list(note.tags), "modified": note.modified}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_search_notes(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_vault

    query, err = _require_str(arguments, "query")
    if err:
        return err
    try:
        hits = _get_vault().search(query)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"query": query, "results": [h.to_dict() for h in hits.items], "total": hits.total, "truncated": hits.truncated})


async def _handle_read_note(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_vault

    path, err = _require_str(arguments, "path")
    if err:
        return err
    try:
        note = _get_vault().read(path)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    if note is None:
        return _error(f"Note not found: {path}", "not_found")
    return _text(note.to_dict())


async def _handle_list_by_tag(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_vault

    tag, err = _require_str(arguments, "tag")
    if err:
        return err
    try:
        notes = _get_vault().by_tag(tag)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"tag": tag, "notes": [_summary(n) for n in notes.items], "total": notes.total, "truncated": notes.truncated})


async def _handle_recent_notes(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_vault

    days = arguments.get("days", 7)
    if err := _validate_int_range(days, "days", min_val=1, max_val=_MAX_RECENT_DAYS):
        return err
    try:
        notes = _get_vault().recent(days)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"days": days, "notes": [_summary(n) for n in notes.items], "total": notes.total, "truncated": notes.truncated})


async def _handle_daily_notes(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_vault

    day = arguments.get("date")
    if err := _validate_str(day, "date"):
        return err
    if day and not _DATE_RE.fullmatch(day):
        return _error("date must be formatted YYYY-MM-DD", "validation_error")
    try:
        notes = _get_vault().daily(day or None)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    return _text({"date": day, "notes": [_summary(n) for n in notes.items], "total": notes.total})


async def _handle_get_backlinks(arguments: dict[str, Any]) -> list[TextContent]:
    from sourcegate.mcp_server import _get_vault

    name, err = _require_str(arguments, "note")
    if err:
        return err
    try:
        note = _get_vault().backlinks(name)
    except EXPECTED_ERRORS as e:
        return _error_response(e)
    if note is None:
        return _error(f"Note not found: {name}", "not_found")
    return _text({"note": note.path, "title": note.title, "backlinks": list(note.backlinks), "count": len(note.backlinks)})
