"""Pydantic models for agency configuration and native invoice requests."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    confloat,
    conint,
    conlist,
    field_validator,
)
from pydantic.alias_generators import to_camel

DEFAULT_INVOICE_FORMAT = "INV-{YYYY}-{counter:5}"
REDACTED_SECRET = "••••••••"

OutcomeKind = Literal[
    "created",
    "agency_not_configured",
    "credential_missing",
    "numbering_failed",
    "downstream_failed",
    "poison_pill",
    "internal_error",
]


def agency_key(agency_id: str) -> str:
    return f"agency:{agency_id}"


class AgencyConfig(BaseModel):
    """Typed view of an ``agency:<id>`` record.

    Unknown fields written by the admin side are ignored. ``invoice_counter``
    is the last issued sequence value and is only ever changed through an
    atomic increment (or an explicit admin reset).
    """

    model_config = ConfigDict(extra="ignore")

    invoice_format: str | None = None
    invoice_counter: int = 0
    ghl_api_key: str | None = None

    @field_validator("invoice_format", "ghl_api_key", mode="before")
    def _blank_to_none(cls, value: Any):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @classmethod
    def from_record(cls, record: dict[str, Any] | None) -> "AgencyConfig | None":
        """Build a config from a stored record; an empty record means unconfigured."""

        if not record:
            return None
        return cls.model_validate(record)

    @property
    def effective_format(self) -> str:
        return self.invoice_format or DEFAULT_INVOICE_FORMAT

    def redacted(self, *, include_secrets: bool = False) -> dict[str, Any]:
        payload = self.model_dump(mode="json", exclude_unset=True)
        if payload.get("ghl_api_key") and not include_secrets:
            payload["ghl_api_key"] = REDACTED_SECRET
        payload["has_ghl_key"] = bool(self.ghl_api_key)
        return payload


class AgencyUpdate(BaseModel):
    """Admin upsert payload; only provided fields are written, unknown keys are dropped."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    agency_id: str = Field(min_length=1)
    invoice_format: str | None = Field(default=None, min_length=1, alias="invoice_format")
    invoice_counter: conint(ge=0) | None = Field(default=None, alias="invoice_counter")
    ghl_api_key: str | None = Field(default=None, min_length=10, alias="ghl_api_key")

    def fields_to_write(self) -> dict[str, Any]:
        return self.model_dump(exclude={"agency_id"}, exclude_none=True)


class _WireModel(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Recipient(_WireModel):
    name: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None


class InvoiceItem(_WireModel):
    description: str = Field(min_length=1)
    quantity: confloat(gt=0)
    unit_price: conint(ge=0)  # cents


class NativeInvoiceRequest(_WireModel):
    agency_id: str = Field(min_length=1)
    location_id: str = Field(min_length=1)
    contact_id: str = Field(min_length=1)
    transaction_id: str = Field(min_length=1)
    is_small_business: bool = False
    recipient: Recipient | None = None  # logged only
    items: conlist(InvoiceItem, min_length=1)


class IssuedNumber(BaseModel):
    counter: int
    number: str


class BillingResult(BaseModel):
    """Outcome of one downstream call; the body is kept opaque."""

    success: bool
    invoice_id: str | None = None
    status_code: int | None = None
    body: Any = None
    error: str | None = None


class SubmissionOutcome(BaseModel):
    kind: OutcomeKind
    status_code: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.kind == "created"


__all__ = [
    "AgencyConfig",
    "AgencyUpdate",
    "BillingResult",
    "DEFAULT_INVOICE_FORMAT",
    "InvoiceItem",
    "IssuedNumber",
    "NativeInvoiceRequest",
    "OutcomeKind",
    "REDACTED_SECRET",
    "Recipient",
    "SubmissionOutcome",
    "agency_key",
]
