"""File-backed keyspace with atomic read-modify-write operations.

Every public :class:`FileKeyStore` method runs as a single transaction under an
exclusive ``portalocker`` lock on the relay root, so increments stay atomic
across threads and across server processes sharing the same directory.

Entries are explicit records::

    {"kind": "hash" | "counter" | "list", "value": ..., "expires_at": <epoch> | null}

Expired entries are dropped the next time any transaction touches the file.
"""
from __future__ import annotations

import json
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

import portalocker

from ..utils.config import STORE_LOCK_TIMEOUT

RELAY_ROOT_NAME = ".relay"
KEYSPACE_FILENAME = "keyspace.json"
LOCK_FILENAME = ".keyspace.lock"


class StoreUnavailable(RuntimeError):
    """Raised when the keyspace cannot be locked, read or written."""


def get_relay_root(base_path: Optional[Path] = None) -> Path:
    """
    Resolve the relay storage root.

    Priority:
    1) RELAY_ROOT env var (absolute or relative to cwd)
    2) explicit base_path (caller-provided)
    3) repository root (parent of relay/) to avoid dropping data in random cwd
    """

    env_root = os.getenv("RELAY_ROOT", "").strip()
    if env_root:
        return Path(env_root).expanduser().resolve()

    if base_path is not None:
        return (base_path / RELAY_ROOT_NAME).resolve()

    repo_root = Path(__file__).resolve().parents[2]
    return (repo_root / RELAY_ROOT_NAME).resolve()


def ensure_structure(root: Optional[Path] = None) -> Path:
    """Create the storage root if it does not exist and return it."""

    relay_root = get_relay_root(root)
    relay_root.mkdir(parents=True, exist_ok=True)
    return relay_root


def _keyspace_path(root: Optional[Path]) -> Path:
    return get_relay_root(root) / KEYSPACE_FILENAME


def _read_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _write_json(path: Path, payload: dict) -> None:
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, sort_keys=True)
        handle.write("\n")
    os.replace(tmp_path, path)


@contextmanager
def with_store_lock(root: Optional[Path] = None, *, timeout: float = STORE_LOCK_TIMEOUT):
    """Hold the exclusive keyspace lock for the duration of the block."""

    try:
        relay_root = ensure_structure(root)
        lock_file = relay_root / LOCK_FILENAME
        lock_file.touch(exist_ok=True)
        handle = portalocker.Lock(
            lock_file,
            mode="a",
            timeout=timeout,
            check_interval=0.01,
            flags=portalocker.LOCK_EX | portalocker.LOCK_NB,
        )
        handle.acquire()
    except portalocker.LockException as exc:
        raise StoreUnavailable(f"Timed out waiting for keyspace lock after {timeout}s") from exc
    except OSError as exc:
        raise StoreUnavailable(f"Keyspace root is not usable: {exc}") from exc

    try:
        yield lock_file
    finally:
        handle.release()


class FileKeyStore:
    """Keyed hashes, counters and lists persisted to ``keyspace.json``."""

    def __init__(
        self,
        root: Optional[Path] = None,
        *,
        clock: Callable[[], float] = time.time,
        lock_timeout: float | None = None,
    ) -> None:
        self.root = root
        self.clock = clock
        self.lock_timeout = STORE_LOCK_TIMEOUT if lock_timeout is None else lock_timeout

    @property
    def path(self) -> Path:
        return _keyspace_path(self.root)

    @contextmanager
    def _transaction(self, *, write: bool) -> Iterator[dict[str, dict[str, Any]]]:
        with with_store_lock(self.root, timeout=self.lock_timeout):
            path = self.path
            try:
                data = _read_json(path)
            except FileNotFoundError:
                data = {}
            except (json.JSONDecodeError, OSError) as exc:
                raise StoreUnavailable(f"Keyspace at {path} is unreadable") from exc

            entries: dict[str, dict[str, Any]] = data.setdefault("entries", {})
            purged = self._purge_expired(entries)

            yield entries

            if write or purged:
                try:
                    _write_json(path, data)
                except OSError as exc:
                    raise StoreUnavailable(f"Keyspace at {path} is not writable") from exc

    def _purge_expired(self, entries: dict[str, dict[str, Any]]) -> bool:
        now = self.clock()
        expired = [
            key
            for key, entry in entries.items()
            if entry.get("expires_at") is not None and entry["expires_at"] <= now
        ]
        for key in expired:
            del entries[key]
        return bool(expired)

    @staticmethod
    def _entry(entries: dict[str, dict[str, Any]], key: str, kind: str) -> dict[str, Any] | None:
        entry = entries.get(key)
        if entry is not None and entry.get("kind") != kind:
            raise ValueError(f"Key {key!r} holds a {entry.get('kind')}, not a {kind}")
        return entry

    # -- hashes --------------------------------------------------------------

    def get_hash(self, key: str) -> dict[str, Any]:
        with self._transaction(write=False) as entries:
            entry = self._entry(entries, key, "hash")
            return dict(entry["value"]) if entry else {}

    def set_hash(self, key: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Merge ``fields`` into the hash at ``key`` and return the stored record."""

        with self._transaction(write=True) as entries:
            entry = self._entry(entries, key, "hash")
            if entry is None:
                entry = entries[key] = {"kind": "hash", "value": {}, "expires_at": None}
            entry["value"].update(fields)
            return dict(entry["value"])

    def increment_hash_field(self, key: str, field: str, amount: int = 1) -> int:
        with self._transaction(write=True) as entries:
            entry = self._entry(entries, key, "hash")
            if entry is None:
                entry = entries[key] = {"kind": "hash", "value": {}, "expires_at": None}
            try:
                current = int(entry["value"].get(field) or 0)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Field {field!r} of {key!r} is not an integer") from exc
            entry["value"][field] = current + amount
            return current + amount

    # -- counters ------------------------------------------------------------

    def increment_and_get(
        self, key: str, amount: int = 1, *, ttl_seconds: float | None = None
    ) -> int:
        """Increment the counter at ``key``.

        ``ttl_seconds`` only applies when this call creates the counter; an
        existing expiry is never extended.
        """

        with self._transaction(write=True) as entries:
            entry = self._entry(entries, key, "counter")
            if entry is None:
                expires_at = None if ttl_seconds is None else self.clock() + ttl_seconds
                entry = entries[key] = {"kind": "counter", "value": 0, "expires_at": expires_at}
            entry["value"] = int(entry["value"]) + amount
            return entry["value"]

    def get_counter(self, key: str) -> int:
        with self._transaction(write=False) as entries:
            entry = self._entry(entries, key, "counter")
            return int(entry["value"]) if entry else 0

    def expire(self, key: str, seconds: float) -> bool:
        """Set the expiry of ``key``; returns False when the key does not exist."""

        with self._transaction(write=True) as entries:
            entry = entries.get(key)
            if entry is None:
                return False
            entry["expires_at"] = self.clock() + seconds
            return True

    def ttl(self, key: str) -> float | None:
        """Remaining lifetime of ``key`` in seconds, or None without expiry/entry."""

        with self._transaction(write=False) as entries:
            entry = entries.get(key)
            if entry is None or entry.get("expires_at") is None:
                return None
            return max(entry["expires_at"] - self.clock(), 0.0)

    # -- lists ---------------------------------------------------------------

    def push_list(self, key: str, value: Any, *, max_length: int | None = None) -> int:
        """Prepend ``value`` (newest first) and trim to ``max_length`` entries."""

        with self._transaction(write=True) as entries:
            entry = self._entry(entries, key, "list")
            if entry is None:
                entry = entries[key] = {"kind": "list", "value": [], "expires_at": None}
            entry["value"].insert(0, value)
            if max_length is not None:
                del entry["value"][max_length:]
            return len(entry["value"])

    def read_list(self, key: str, limit: int | None = None) -> list[Any]:
        with self._transaction(write=False) as entries:
            entry = self._entry(entries, key, "list")
            if entry is None:
                return []
            values = list(entry["value"])
            return values if limit is None else values[:limit]


__all__ = [
    "FileKeyStore",
    "StoreUnavailable",
    "ensure_structure",
    "get_relay_root",
    "with_store_lock",
]
