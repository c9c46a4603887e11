"""Agency (tenant) configuration: lookup, admin upsert and number preview."""
from __future__ import annotations

import logging
from typing import Any, Dict

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import ValidationError

from ..utils import config
from ..utils.logging import record_write_attempt
from .models import AgencyConfig, AgencyUpdate, agency_key
from .numbering import InvoiceNumberIssuer, SequenceStore, template_has_counter
from .storage import FileKeyStore, StoreUnavailable

_LOGGER = logging.getLogger("relay.backends.agencies")


class WritesDisabled(RuntimeError):
    """Raised when write operations are attempted while disabled."""


class AgencyNotFound(LookupError):
    """Raised when no configuration record exists for an agency."""


class InvalidAgencyUpdate(ValueError):
    """Raised when an admin update carries nothing to write."""


def require_writes_enabled() -> None:
    if not config.ENABLE_WRITES:
        raise WritesDisabled(
            "Write-capable tools are disabled. Set MCP_ENABLE_WRITES=1 to allow writes."
        )


def load_agency_config(agency_id: str, store: FileKeyStore) -> AgencyConfig | None:
    """Return the agency configuration, or None when the agency is unconfigured."""

    return AgencyConfig.from_record(store.get_hash(agency_key(agency_id)))


def _normalize_id(agency_id: str | None) -> str:
    normalized = str(agency_id).strip() if agency_id is not None else ""
    if not normalized:
        raise InvalidAgencyUpdate("agencyId required")
    return normalized


def get_agency_impl(
    agency_id: str,
    include_secrets: bool = False,
    *,
    store: FileKeyStore | None = None,
) -> Dict[str, Any]:
    normalized_id = _normalize_id(agency_id)
    agency = load_agency_config(normalized_id, store or FileKeyStore())
    if agency is None:
        raise AgencyNotFound(f"Agency {normalized_id} not found")
    return {
        "agencyId": normalized_id,
        "config": agency.redacted(include_secrets=include_secrets),
    }


def upsert_agency_impl(update: AgencyUpdate, *, store: FileKeyStore | None = None) -> Dict[str, Any]:
    """Create or update an agency record with the provided fields only."""

    fields = update.fields_to_write()
    if not fields:
        raise InvalidAgencyUpdate("No fields provided to update")

    template = fields.get("invoice_format")
    if template is not None and not template_has_counter(template):
        _LOGGER.warning(
            "agency %s invoice_format %r has no {counter} token; "
            "issued numbers will get a '-<counter>' suffix",
            update.agency_id,
            template,
        )

    record_write_attempt("upsert_agency", agency_id=update.agency_id, fields=sorted(fields))
    stored = (store or FileKeyStore()).set_hash(agency_key(update.agency_id), fields)
    agency = AgencyConfig.model_validate(stored)
    return {
        "status": "ok",
        "agencyId": update.agency_id,
        "config": agency.redacted(),
    }


def preview_invoice_number_impl(agency_id: str, *, store: FileKeyStore | None = None) -> Dict[str, Any]:
    normalized_id = _normalize_id(agency_id)
    store = store or FileKeyStore()
    agency = load_agency_config(normalized_id, store)
    if agency is None:
        raise AgencyNotFound(f"Agency {normalized_id} not found")

    preview = InvoiceNumberIssuer(SequenceStore(store)).preview(agency)
    return {
        "agencyId": normalized_id,
        "invoiceFormat": agency.effective_format,
        "nextCounter": preview.counter,
        "nextInvoiceNumber": preview.number,
    }


def register(server: FastMCP) -> None:
    """Register agency configuration tools."""

    @server.tool()
    def get_agency(agency_id: str, include_secrets: bool = False) -> Dict[str, Any]:
        """Read an agency configuration; the GHL key is masked unless include_secrets."""

        try:
            return get_agency_impl(agency_id, include_secrets)
        except (AgencyNotFound, InvalidAgencyUpdate, StoreUnavailable) as exc:
            raise ToolError(str(exc)) from exc

    @server.tool()
    def upsert_agency(
        agency_id: str,
        invoice_format: str | None = None,
        invoice_counter: int | None = None,
        ghl_api_key: str | None = None,
    ) -> Dict[str, Any]:
        """Create or update an agency configuration.

        - invoice_format: template with {YYYY}, {YY}, {MM}, {DD} and {counter} or
          {counter:N}; defaults to INV-{YYYY}-{counter:5} when never set.
        - invoice_counter: last issued value; the next invoice uses counter + 1.
        - ghl_api_key: per-agency bearer token for the billing provider.
        """

        try:
            require_writes_enabled()
            update = AgencyUpdate(
                agency_id=agency_id,
                invoice_format=invoice_format,
                invoice_counter=invoice_counter,
                ghl_api_key=ghl_api_key,
            )
            return upsert_agency_impl(update)
        except ValidationError as exc:
            raise ToolError(f"Invalid agency update: {exc}") from exc
        except (WritesDisabled, InvalidAgencyUpdate, StoreUnavailable) as exc:
            raise ToolError(str(exc)) from exc

    @server.tool()
    def preview_invoice_number(agency_id: str) -> Dict[str, Any]:
        """Show the invoice number the next submission for this agency would receive.

        Read-only: the agency's counter is not consumed.
        """

        try:
            return preview_invoice_number_impl(agency_id)
        except (AgencyNotFound, InvalidAgencyUpdate, StoreUnavailable) as exc:
            raise ToolError(str(exc)) from exc


__all__ = [
    "AgencyNotFound",
    "InvalidAgencyUpdate",
    "WritesDisabled",
    "get_agency_impl",
    "load_agency_config",
    "preview_invoice_number_impl",
    "register",
    "require_writes_enabled",
    "upsert_agency_impl",
]
