"""HTTP routes: native invoice submission, agency admin and log listing."""
from __future__ import annotations

import json
import logging

from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from relay.api.envelopes import envelope_ok, error_body
from relay.backends.agencies import (
    AgencyNotFound,
    InvalidAgencyUpdate,
    get_agency_impl,
    upsert_agency_impl,
)
from relay.backends.event_log import DEFAULT_LOG_LIMIT, EventLog, list_logs_impl
from relay.backends.models import AgencyUpdate, NativeInvoiceRequest
from relay.backends.storage import FileKeyStore, StoreUnavailable
from relay.backends.submission import create_native_invoice_impl
from relay.utils.config import get_admin_api_key, get_invoice_api_key

logger = logging.getLogger("relay.api.routes")


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(error_body(message, **extra), status_code=status_code)


def _validation_issues(exc: ValidationError) -> list:
    return json.loads(exc.json(include_url=False))


async def _json_body(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


def _admin_denied(request: Request, *, required: bool) -> JSONResponse | None:
    expected = get_admin_api_key()
    if not expected:
        if required:
            return _error(500, "Server misconfiguration (ADMIN_API_KEY missing)")
        return None
    if request.headers.get("x-admin-key") != expected:
        return _error(401, "Unauthorized")
    return None


async def create_native_invoice(request: Request) -> JSONResponse:
    expected = get_invoice_api_key()
    if not expected or request.headers.get("x-api-key") != expected:
        return _error(401, "Unauthorized")

    raw = await _json_body(request)
    if raw is None:
        return _error(400, "Invalid JSON body")

    try:
        payload = NativeInvoiceRequest.model_validate(raw)
    except ValidationError as exc:
        return _error(400, "Validation failed", issues=_validation_issues(exc))

    try:
        outcome = await run_in_threadpool(create_native_invoice_impl, payload)
    except Exception as exc:
        logger.exception("Unhandled error in create_native_invoice")
        await run_in_threadpool(
            EventLog(FileKeyStore()).append,
            "error",
            "Unhandled error in create-native-invoice",
            agencyId=payload.agency_id,
            transactionId=payload.transaction_id,
            error=str(exc),
        )
        return _error(500, "Internal Server Error")

    return JSONResponse(outcome.body, status_code=outcome.status_code)


async def get_agency(request: Request) -> JSONResponse:
    denied = _admin_denied(request, required=True)
    if denied is not None:
        return denied

    agency_id = request.query_params.get("agencyId", "")
    include_secrets = request.query_params.get("includeSecrets", "false").lower() == "true"
    if not agency_id:
        return _error(400, "agencyId required")

    try:
        payload = await run_in_threadpool(get_agency_impl, agency_id, include_secrets)
    except AgencyNotFound:
        return _error(404, "Not found")
    except (InvalidAgencyUpdate, StoreUnavailable, ValidationError) as exc:
        return _error(500, "Failed to fetch agency", details=str(exc))
    return JSONResponse(payload)


async def upsert_agency(request: Request) -> JSONResponse:
    denied = _admin_denied(request, required=True)
    if denied is not None:
        return denied

    raw = await _json_body(request)
    if raw is None:
        return _error(400, "Invalid JSON")

    try:
        update = AgencyUpdate.model_validate(raw)
    except ValidationError as exc:
        return _error(400, "Validation failed", issues=_validation_issues(exc))

    try:
        payload = await run_in_threadpool(upsert_agency_impl, update)
    except InvalidAgencyUpdate as exc:
        return _error(400, str(exc))
    except StoreUnavailable as exc:
        return _error(500, "Failed to upsert agency", details=str(exc))
    return JSONResponse(payload)


async def list_logs(request: Request) -> JSONResponse:
    denied = _admin_denied(request, required=False)
    if denied is not None:
        return denied

    params = request.query_params
    try:
        payload = await run_in_threadpool(
            list_logs_impl,
            params.get("limit", DEFAULT_LOG_LIMIT),
            params.get("agencyId") or None,
            params.get("transactionId") or None,
        )
    except StoreUnavailable as exc:
        return _error(500, "Failed to fetch logs", details=str(exc))
    return JSONResponse(payload)


async def health(request: Request) -> JSONResponse:
    return JSONResponse(envelope_ok({"service": "agency-invoice-relay"}))


def make_routes() -> list[Route]:
    return [
        Route("/invoices/native", create_native_invoice, methods=["POST"]),
        Route("/admin/agency", get_agency, methods=["GET"]),
        Route("/admin/agency", upsert_agency, methods=["POST"]),
        Route("/logs", list_logs, methods=["GET"]),
        Route("/health", health, methods=["GET"]),
    ]


__all__ = ["make_routes"]
