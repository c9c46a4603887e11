"""Logging setup and write auditing."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from relay.utils import config

_LOGGER = logging.getLogger("relay.audit")

LOG_FORMAT = "%(levelname)s:%(name)s:%(message)s"


def configure_root(level: int = logging.INFO) -> None:
    """(Re)configure the root logger, replacing any handlers already installed."""

    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)


def record_write_attempt(action: str, **fields: object) -> None:
    """Log a write-capable operation and append it to the audit log when configured."""

    _LOGGER.info("write.%s %s", action, fields or "")
    path = config.AUDIT_LOG_PATH
    if path is None:
        return

    entry = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "action": action,
        **fields,
    }
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, sort_keys=True, default=str))
            handle.write("\n")
    except OSError:
        _LOGGER.warning("audit log not writable at %s", path, exc_info=True)


__all__ = ["LOG_FORMAT", "configure_root", "record_write_attempt"]
