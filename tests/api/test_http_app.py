"""Tests for the FastAPI HTTP transport."""

from __future__ import annotations

from httpx import AsyncClient

from sourcegate import __version__


class TestApiEndpoints:
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "adapter": "sqlite", "version": __version__}

    async def test_tools(self, client: AsyncClient) -> None:
        resp = await client.get("/api/tools")
        assert resp.status_code == 200
        assert [t["name"] for t in resp.json()] == ["list_tables", "describe_table", "query", "search", "sample"]

    async def test_unknown_route(self, client: AsyncClient) -> None:
        resp = await client.get("/api/nope")
        assert resp.status_code == 404


class TestMcpMount:
    async def test_session_manager_not_started(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/mcp/",
            json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
            headers={"Accept": "application/json, text/event-stream"},
        )
        assert resp.status_code == 503
        assert resp.json() == {"error": "MCP session manager not initialized"}
