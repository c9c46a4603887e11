"""Native invoice submission: numbering, downstream call and failure control.

One request moves through::

    received -> config checked -> number issued -> downstream pending
             -> created | downstream failed (transient) | poison pill

Nothing is remembered between requests except the agency sequence and the
per-transaction failure counters in the keyspace.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from ..utils.config import get_default_ghl_api_key
from ..utils.logging import record_write_attempt
from .agencies import WritesDisabled, load_agency_config, require_writes_enabled
from .billing import BillingClient, build_native_invoice_payload
from .event_log import EventLog
from .failures import FailureLedger
from .models import NativeInvoiceRequest, OutcomeKind, SubmissionOutcome
from .numbering import InvoiceNumberIssuer, SequenceStore
from .storage import FileKeyStore, StoreUnavailable

_LOGGER = logging.getLogger("relay.backends.submission")


def _outcome(kind: OutcomeKind, status_code: int, body: dict[str, Any]) -> SubmissionOutcome:
    return SubmissionOutcome(kind=kind, status_code=status_code, body=body)


def _error(kind: OutcomeKind, status_code: int, message: str, **extra: Any) -> SubmissionOutcome:
    return _outcome(kind, status_code, {"error": message, **extra})


class SubmissionController:
    def __init__(
        self,
        store: FileKeyStore,
        *,
        billing: BillingClient,
        issuer: InvoiceNumberIssuer | None = None,
        ledger: FailureLedger | None = None,
        events: EventLog | None = None,
        default_api_key: str | None = None,
    ) -> None:
        self.store = store
        self.billing = billing
        self.issuer = issuer or InvoiceNumberIssuer(SequenceStore(store))
        self.ledger = ledger or FailureLedger(store)
        self.events = events or EventLog(store)
        self.default_api_key = default_api_key

    def submit(self, request: NativeInvoiceRequest) -> SubmissionOutcome:
        agency_id = request.agency_id
        transaction_id = request.transaction_id
        context = {"agencyId": agency_id, "transactionId": transaction_id}

        try:
            agency = load_agency_config(agency_id, self.store)
        except StoreUnavailable as exc:
            self.events.append("error", "Agency config lookup failed", error=str(exc), **context)
            return _error("internal_error", 500, "Internal Server Error")

        if agency is None:
            self.events.append("warn", "Agency config missing", **context)
            return _error("agency_not_configured", 403, "Forbidden: agency not configured")

        api_key = agency.ghl_api_key or self.default_api_key
        if not api_key:
            self.events.append("error", "No GHL key configured (agency or env)", **context)
            return _error("credential_missing", 500, "Server misconfiguration")

        try:
            issued = self.issuer.issue(agency_id, agency)
        except StoreUnavailable as exc:
            self.events.append("error", "Invoice numbering failed", error=str(exc), **context)
            return _error("numbering_failed", 500, "Internal Server Error")

        context.update(invoiceNumber=issued.number, counter=issued.counter)
        payload = build_native_invoice_payload(request, issued.number)
        result = self.billing.submit(payload, api_key=api_key)

        if result.success:
            self.events.append(
                "info",
                "Native invoice created",
                ghlInvoiceId=result.invoice_id,
                httpStatus=result.status_code,
                recipient=(
                    request.recipient.model_dump(by_alias=True) if request.recipient else None
                ),
                keySource="agency" if agency.ghl_api_key else "env",
                **context,
            )
            return _outcome(
                "created",
                200,
                {
                    "status": "ok",
                    "message": "Native invoice created",
                    "invoiceId": result.invoice_id,
                    "invoiceNumber": issued.number,
                },
            )

        try:
            count = self.ledger.record_failure(agency_id, transaction_id)
        except StoreUnavailable as exc:
            self.events.append(
                "error",
                "Failure ledger unavailable",
                httpStatus=result.status_code,
                error=str(exc),
                **context,
            )
            return _error("internal_error", 500, "Internal Server Error")

        poison = self.ledger.is_poison(count)
        self.events.append(
            "error",
            "Native invoice creation failed",
            httpStatus=result.status_code,
            response=result.body,
            error=result.error,
            poison=poison,
            errorCount=count,
            **context,
        )
        if poison:
            return _error(
                "poison_pill",
                429,
                "Poison pill: too many failures for this transaction",
                transactionId=transaction_id,
                errorCount=count,
            )
        return _error(
            "downstream_failed",
            result.status_code or 502,
            "Failed to create native invoice",
            details=result.body,
        )


def build_submission_controller(
    *,
    store: FileKeyStore | None = None,
    billing: BillingClient | None = None,
) -> SubmissionController:
    return SubmissionController(
        store or FileKeyStore(),
        billing=billing or BillingClient(),
        default_api_key=get_default_ghl_api_key(),
    )


def create_native_invoice_impl(
    request: NativeInvoiceRequest,
    *,
    store: FileKeyStore | None = None,
    billing: BillingClient | None = None,
) -> SubmissionOutcome:
    """Submit one validated request and return its outcome (never raises for known failures)."""

    record_write_attempt(
        "create_native_invoice",
        agency_id=request.agency_id,
        transaction_id=request.transaction_id,
    )
    controller = build_submission_controller(store=store, billing=billing)
    outcome = controller.submit(request)
    _LOGGER.info(
        "submission.%s agency=%s transaction=%s status=%s",
        outcome.kind,
        request.agency_id,
        request.transaction_id,
        outcome.status_code,
    )
    return outcome


def register(server: FastMCP) -> None:
    """Register invoice submission tools."""

    @server.tool()
    def create_native_invoice(request: NativeInvoiceRequest) -> Dict[str, Any]:
        """Number an invoice for the agency and create it as a draft at the billing provider.

        - Amounts are integer cents (unitPrice); quantity must be positive.
        - isSmallBusiness=True applies 0% VAT (German small-business rule), otherwise 19%.
        - Reuse the same transactionId when retrying; after 5 failures within 24h the
          transaction is rejected as a poison pill and must not be retried.
        """

        try:
            require_writes_enabled()
        except WritesDisabled as exc:
            raise ToolError(str(exc)) from exc

        outcome = create_native_invoice_impl(request)
        if not outcome.ok:
            raise ToolError(f"{outcome.body.get('error')} (status {outcome.status_code})")
        return outcome.body


__all__ = [
    "SubmissionController",
    "build_submission_controller",
    "create_native_invoice_impl",
    "register",
]
