"""Best-effort event log kept in the keyspace for the admin cockpit."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from ..utils.config import LOG_RETENTION
from .storage import FileKeyStore, StoreUnavailable

_LOGGER = logging.getLogger("relay.backends.event_log")
_EVENTS = logging.getLogger("relay.events")

LOG_KEY = "invoice_logs"
DEFAULT_LOG_LIMIT = 100

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class EventLog:
    """Append-only, size-bounded list of structured events.

    Writing is fire-and-forget: a failing store never changes the outcome of
    the request that produced the event.
    """

    def __init__(self, store: FileKeyStore, *, retention: int = LOG_RETENTION) -> None:
        self.store = store
        self.retention = retention

    def append(self, level: str, message: str, **fields: Any) -> None:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
            **fields,
        }
        _EVENTS.log(_LEVELS.get(level, logging.INFO), "%s %s", message, fields)
        try:
            self.store.push_list(LOG_KEY, entry, max_length=self.retention)
        except Exception:
            _LOGGER.warning("event log write failed for %r", message, exc_info=True)

    def entries(self) -> list[dict[str, Any]]:
        return [entry for entry in self.store.read_list(LOG_KEY, self.retention) if isinstance(entry, dict)]


def _normalize_limit(limit: object) -> int:
    try:
        parsed = int(limit) if limit is not None else DEFAULT_LOG_LIMIT
    except (TypeError, ValueError):
        parsed = DEFAULT_LOG_LIMIT
    if parsed == 0:
        parsed = DEFAULT_LOG_LIMIT
    return max(1, min(parsed, LOG_RETENTION))


def list_logs_impl(
    limit: object = DEFAULT_LOG_LIMIT,
    agency_id: str | None = None,
    transaction_id: str | None = None,
    *,
    store: FileKeyStore | None = None,
) -> Dict[str, Any]:
    """Newest-first events, optionally filtered by agency and transaction."""

    log = EventLog(store or FileKeyStore())
    filtered = [
        entry
        for entry in log.entries()
        if (not agency_id or entry.get("agencyId") == agency_id)
        and (not transaction_id or entry.get("transactionId") == transaction_id)
    ]
    return {"logs": filtered[: _normalize_limit(limit)]}


def register(server: FastMCP) -> None:
    """Register event log tools."""

    @server.tool()
    def list_invoice_logs(
        limit: int = DEFAULT_LOG_LIMIT,
        agency_id: str | None = None,
        transaction_id: str | None = None,
    ) -> Dict[str, Any]:
        """Read the most recent invoice events (newest first, at most 500).

        Filter by agency_id and/or transaction_id to follow a single agency or
        retry chain.
        """

        try:
            return list_logs_impl(limit, agency_id, transaction_id)
        except StoreUnavailable as exc:
            raise ToolError(f"Failed to fetch logs: {exc}") from exc


__all__ = ["DEFAULT_LOG_LIMIT", "EventLog", "LOG_KEY", "list_logs_impl", "register"]
