"""Fixtures for HTTP transport tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

import sourcegate.mcp_server as mcp_mod
from sourcegate.http_app import create_app
from sourcegate.sources.sqlite import SqliteSource


@pytest.fixture
async def client(sample_db_path: Path, restore_server: None) -> AsyncIterator[AsyncClient]:
    """Client for an app serving a SQLite source.

    ASGITransport does not run the lifespan, so the MCP session manager
    is never started.
    """
    source = SqliteSource(sample_db_path, check_same_thread=False)
    mcp_mod.configure("sqlite", source)
    app = create_app("sqlite")
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    source.close()
