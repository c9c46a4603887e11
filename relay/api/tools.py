"""Tool registration for the invoice relay."""
from __future__ import annotations

import logging

from mcp.server.fastmcp import FastMCP

from relay.backends import agencies, event_log, submission

_BACKENDS = (
    ("relay.backends.submission", submission),
    ("relay.backends.agencies", agencies),
    ("relay.backends.event_log", event_log),
)


def register_tools(server: FastMCP) -> list[str]:
    """Register built-in backends on the MCP server."""

    loaded: list[str] = []
    for name, backend in _BACKENDS:
        try:
            backend.register(server)
            loaded.append(name)
        except Exception:  # pragma: no cover
            logging.getLogger("relay.api.tools").exception("backend.register_error", extra={"module": name})
    return loaded


__all__ = ["register_tools"]
