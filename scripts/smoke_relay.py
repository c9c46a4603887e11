#!/usr/bin/env python3
"""
Lightweight smoke test for the invoice relay.

Configures a sample agency under a temp RELAY_ROOT, submits three invoices
against a stubbed billing provider (the third one failing), and prints the
issued numbers and the resulting event log.
"""
from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path

import httpx

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from relay.backends.agencies import upsert_agency_impl
from relay.backends.billing import BillingClient
from relay.backends.event_log import list_logs_impl
from relay.backends.models import AgencyUpdate, NativeInvoiceRequest
from relay.backends.storage import get_relay_root
from relay.backends.submission import create_native_invoice_impl


def _stub_provider() -> BillingClient:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 3:
            return httpx.Response(503, json={"message": "maintenance"})
        return httpx.Response(201, json={"id": f"stub-{calls['n']}"})

    return BillingClient("https://billing.invalid", transport=httpx.MockTransport(handler))


def main() -> None:
    # Isolate into a temp directory unless RELAY_ROOT is already set
    if "RELAY_ROOT" not in os.environ:
        os.environ["RELAY_ROOT"] = tempfile.mkdtemp(prefix="invoice-relay-smoke-")
    root = get_relay_root()

    upsert_agency_impl(
        AgencyUpdate(
            agency_id="SMOKE",
            invoice_format="SMK-{YY}{MM}-{counter:4}",
            ghl_api_key="smoke-token-123",
        )
    )

    billing = _stub_provider()
    for idx in range(1, 4):
        request = NativeInvoiceRequest.model_validate(
            {
                "agencyId": "SMOKE",
                "locationId": "loc-smoke",
                "contactId": "contact-smoke",
                "transactionId": f"smoke-{idx}",
                "items": [{"description": "Consulting", "quantity": 2, "unitPrice": 15000}],
            }
        )
        outcome = create_native_invoice_impl(request, billing=billing)
        print(f"[smoke] {request.transaction_id}: {outcome.status_code} {json.dumps(outcome.body)}")

    print(f"[smoke] RELAY_ROOT={root}")
    for entry in list_logs_impl(limit=10, agency_id="SMOKE")["logs"]:
        print(f"[smoke] log {entry['level']}: {entry['message']}")
    print("[smoke] Done.")


if __name__ == "__main__":  # pragma: no cover
    main()
