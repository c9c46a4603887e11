"""Envelope helpers for HTTP/MCP responses."""
from __future__ import annotations

from typing import Any


def envelope_ok(data: object) -> dict[str, object]:
    return {"ok": True, "data": data, "errors": []}


def error_body(message: str, **extra: Any) -> dict[str, Any]:
    """Error payload in the ``{"error": ..., **extra}`` shape clients already parse."""

    return {"error": message, **extra}


__all__ = ["envelope_ok", "error_body"]
