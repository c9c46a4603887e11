"""Runtime configuration helpers for the invoice relay."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Final, Optional

from dotenv import load_dotenv

# Load .env file from project root (if it exists)
load_dotenv()


def _parse_bool(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    return value in {"1", "true", "yes", "on"}


def _parse_int(value: str | None, *, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(name: str, *, default: bool = False) -> bool:
    return _parse_bool(os.getenv(name), default=default)


def _env_int(name: str, *, default: int) -> int:
    return _parse_int(os.getenv(name), default=default)


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


ENABLE_WRITES: Final[bool] = _env_bool("MCP_ENABLE_WRITES", default=False)

LOG_RETENTION: Final[int] = _env_int("RELAY_LOG_RETENTION", default=500)
DOWNSTREAM_TIMEOUT_SECONDS: Final[int] = _env_int("RELAY_DOWNSTREAM_TIMEOUT", default=20)
STORE_LOCK_TIMEOUT: Final[int] = _env_int("RELAY_STORE_LOCK_TIMEOUT", default=5)

GHL_BASE_URL: Final[str] = (
    os.getenv("GHL_BASE_URL", "").strip() or "https://services.leadconnectorhq.com"
)
GHL_API_VERSION: Final[str] = os.getenv("GHL_API_VERSION", "").strip() or "2021-07-28"

_audit_log_env = os.getenv("MCP_AUDIT_LOG", "").strip()
AUDIT_LOG_PATH: Final[Optional[Path]] = (
    Path(_audit_log_env).expanduser() if _audit_log_env else None
)


def get_invoice_api_key() -> Optional[str]:
    """Shared secret expected in the ``x-api-key`` header of invoice requests."""

    return _env_str("INVOICE_API_KEY")


def get_admin_api_key() -> Optional[str]:
    """Shared secret expected in the ``x-admin-key`` header of admin requests."""

    return _env_str("ADMIN_API_KEY")


def get_default_ghl_api_key() -> Optional[str]:
    """Fallback bearer token for agencies without their own ``ghl_api_key``."""

    return _env_str("GHL_API_KEY")


__all__ = [
    "AUDIT_LOG_PATH",
    "DOWNSTREAM_TIMEOUT_SECONDS",
    "ENABLE_WRITES",
    "GHL_API_VERSION",
    "GHL_BASE_URL",
    "LOG_RETENTION",
    "STORE_LOCK_TIMEOUT",
    "get_admin_api_key",
    "get_default_ghl_api_key",
    "get_invoice_api_key",
]
