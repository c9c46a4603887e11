"""Per-transaction downstream failure accounting ("poison pill" detection)."""
from __future__ import annotations

import logging
from urllib.parse import quote

from .storage import FileKeyStore

_LOGGER = logging.getLogger("relay.backends.failures")

POISON_THRESHOLD = 5
FAILURE_WINDOW_SECONDS = 24 * 60 * 60


def failure_key(agency_id: str, transaction_id: str) -> str:
    # ids are percent-encoded; a ":" inside one must not make two pairs share a key
    return f"txn_error_count:{quote(agency_id, safe='')}:{quote(transaction_id, safe='')}"


class FailureLedger:
    """Expiring failure counters keyed by (agency, transaction).

    The window starts with the first recorded failure and is not extended by
    later ones. Successful submissions leave the count alone; it simply ages
    out with the window.
    """

    def __init__(self, store: FileKeyStore, *, window_seconds: int = FAILURE_WINDOW_SECONDS) -> None:
        self.store = store
        self.window_seconds = window_seconds

    def record_failure(self, agency_id: str, transaction_id: str) -> int:
        count = self.store.increment_and_get(
            failure_key(agency_id, transaction_id), ttl_seconds=self.window_seconds
        )
        _LOGGER.debug(
            "failure.recorded agency=%s transaction=%s count=%s",
            agency_id,
            transaction_id,
            count,
        )
        return count

    def failure_count(self, agency_id: str, transaction_id: str) -> int:
        return self.store.get_counter(failure_key(agency_id, transaction_id))

    @staticmethod
    def is_poison(count: int) -> bool:
        return count >= POISON_THRESHOLD


__all__ = ["FAILURE_WINDOW_SECONDS", "FailureLedger", "POISON_THRESHOLD", "failure_key"]
