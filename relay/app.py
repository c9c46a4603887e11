"""Application wiring: MCP server and HTTP API."""
from __future__ import annotations

from mcp.server.fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

from relay.api import make_routes, register_tools

MCP_SERVER = FastMCP("agency-invoice-relay")
LOADED_BACKENDS = register_tools(MCP_SERVER)


def build_api_app() -> Starlette:
    """Create the Starlette app serving the invoice, admin and log endpoints."""

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "x-api-key", "x-admin-key"],
        )
    ]
    return Starlette(debug=False, routes=make_routes(), middleware=middleware)


__all__ = ["LOADED_BACKENDS", "MCP_SERVER", "build_api_app"]
