"""HTTP transport: FastAPI app serving MCP streamable-HTTP at ``/mcp``.

Usage:
    sourcegate serve sqlite --http --port 8377
"""

from __future__ import annotations

import logging
import os
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8377


def create_app(adapter: str) -> Any:
    """Create the FastAPI application for an already-configured *adapter*.

    ``/api/health`` and ``/api/tools`` are plain JSON endpoints; the MCP
    endpoint is mounted at ``/mcp`` and its session manager runs for the
    lifetime of the app.
    """
    import contextlib
    from collections.abc import AsyncIterator

    from fastapi import FastAPI
    from fastapi.responses import JSONResponse
    from starlette.routing import Mount

    from sourcegate import __version__
    from sourcegate.mcp_server import create_mcp_app, list_tools

    mcp_handler, mcp_lifespan_factory = create_mcp_app()

    @contextlib.asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with mcp_lifespan_factory():
            yield

    app = FastAPI(title="sourcegate", docs_url=None, redoc_url=None, lifespan=_lifespan)

    @app.get("/api/health")
    async def api_health() -> JSONResponse:
        return JSONResponse({"status": "ok", "adapter": adapter, "version": __version__})

    @app.get("/api/tools")
    async def api_tools() -> JSONResponse:
        tools = await list_tools()
        return JSONResponse([{"name": t.name, "description": t.description} for t in tools])

    app.routes.append(Mount("/mcp", app=mcp_handler))
    return app


def main(adapter: str, port: int = DEFAULT_PORT) -> None:
    """Configure *adapter* from the environment and serve it over HTTP."""
    import uvicorn

    from sourcegate.mcp_server import start

    start(adapter, os.environ, check_same_thread=False)
    app = create_app(adapter)
    print(f"sourcegate ({adapter}): http://localhost:{port}/mcp")
    logger.info("Serving %s over HTTP on port %d", adapter, port)
    uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")
