"""LeadConnector (GoHighLevel) native invoice API client."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from ..utils.config import DOWNSTREAM_TIMEOUT_SECONDS, GHL_API_VERSION, GHL_BASE_URL
from .models import BillingResult, NativeInvoiceRequest

_LOGGER = logging.getLogger("relay.backends.billing")

SMALL_BUSINESS_TAX = {"name": "Umsatzsteuer", "rate": 0, "type": "PERCENT"}
STANDARD_TAX = {"name": "19% MwSt.", "rate": 19, "type": "PERCENT"}


def _cents_to_amount(cents: int) -> float:
    return round(cents / 100, 2)


def build_native_invoice_payload(request: NativeInvoiceRequest, invoice_number: str) -> dict[str, Any]:
    """Map a validated request onto the downstream draft-invoice payload."""

    line_items = [
        {
            "description": item.description,
            "qty": item.quantity,
            "unit_price": _cents_to_amount(item.unit_price),
        }
        for item in request.items
    ]
    tax = SMALL_BUSINESS_TAX if request.is_small_business else STANDARD_TAX

    return {
        "locationId": request.location_id,
        "contactId": request.contact_id,
        "status": "draft",
        "invoiceData": {
            "items": line_items,
            "invoiceNumber": invoice_number,
            "terms": "",
            "notes": "",
            "taxType": "inclusive",
            "tax": dict(tax),
        },
    }


def _extract_invoice_id(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    nested = data.get("data")
    candidate = data.get("id") or data.get("invoiceId")
    if candidate is None and isinstance(nested, dict):
        candidate = nested.get("id")
    return str(candidate) if candidate is not None else None


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class BillingClient:
    """Single-attempt POST of draft invoices to the billing provider."""

    def __init__(
        self,
        base_url: str = GHL_BASE_URL,
        *,
        api_version: str = GHL_API_VERSION,
        timeout: float = DOWNSTREAM_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self.transport = transport

    def submit(self, payload: dict[str, Any], *, api_key: str) -> BillingResult:
        url = f"{self.base_url}/invoices/"
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Version": self.api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            with httpx.Client(
                timeout=self.timeout, transport=self.transport, follow_redirects=True
            ) as client:
                response = client.post(url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            _LOGGER.warning("billing.rejected status=%s", exc.response.status_code)
            return BillingResult(
                success=False,
                status_code=exc.response.status_code,
                body=_response_body(exc.response),
                error=str(exc),
            )
        except httpx.HTTPError as exc:
            _LOGGER.warning("billing.unreachable error=%s", exc)
            return BillingResult(success=False, error=str(exc) or exc.__class__.__name__)

        body = _response_body(response)
        return BillingResult(
            success=True,
            invoice_id=_extract_invoice_id(body),
            status_code=response.status_code,
            body=body,
        )


__all__ = ["BillingClient", "build_native_invoice_payload"]
