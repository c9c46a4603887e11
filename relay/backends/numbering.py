"""Per-agency invoice number sequencing and template formatting."""
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Callable

from .models import DEFAULT_INVOICE_FORMAT, AgencyConfig, IssuedNumber, agency_key
from .storage import FileKeyStore

_LOGGER = logging.getLogger("relay.backends.numbering")

COUNTER_FIELD = "invoice_counter"

_COUNTER_TOKEN = re.compile(r"\{counter(?::(\d+))?\}")


def _date_tokens(today: date) -> dict[str, str]:
    year = f"{today.year:04d}"
    return {
        "{YYYY}": year,
        "{YY}": year[-2:],
        "{MM}": f"{today.month:02d}",
        "{DD}": f"{today.day:02d}",
    }


def template_has_counter(template: str | None) -> bool:
    return bool(template) and _COUNTER_TOKEN.search(template) is not None


def format_invoice_number(
    template: str | None, counter: int, today: date | None = None
) -> str:
    """Render an invoice number from ``template``.

    Supported placeholders: ``{YYYY}``, ``{YY}``, ``{MM}``, ``{DD}`` and
    ``{counter}`` / ``{counter:N}`` (zero-padded to ``N`` digits). Templates
    without a counter placeholder get ``-<counter>`` appended so two issued
    numbers can never collide.
    """

    if isinstance(counter, bool) or not isinstance(counter, int) or counter < 1:
        raise ValueError(f"counter must be a positive integer, got {counter!r}")

    effective = template or DEFAULT_INVOICE_FORMAT
    result = effective
    for token, value in _date_tokens(today or date.today()).items():
        result = result.replace(token, value)

    def _pad(match: re.Match[str]) -> str:
        width = int(match.group(1)) if match.group(1) else 1
        return str(counter).zfill(width)

    result = _COUNTER_TOKEN.sub(_pad, result)

    if not template_has_counter(effective):
        result = f"{result}-{counter}"
    return result


class SequenceStore:
    """Atomic per-agency counter kept in the ``invoice_counter`` field."""

    def __init__(self, store: FileKeyStore) -> None:
        self.store = store

    def next_value(self, agency_id: str) -> int:
        value = self.store.increment_hash_field(agency_key(agency_id), COUNTER_FIELD)
        _LOGGER.debug("sequence.next agency=%s value=%s", agency_id, value)
        return value


class InvoiceNumberIssuer:
    """Consume one sequence value and format it with the agency template.

    A value handed out by :meth:`issue` is never given back, even when the
    downstream call later fails; gaps are expected, duplicates are not.
    """

    def __init__(
        self,
        sequence: SequenceStore,
        *,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.sequence = sequence
        self.today = today

    def issue(self, agency_id: str, config: AgencyConfig) -> IssuedNumber:
        counter = self.sequence.next_value(agency_id)
        number = format_invoice_number(config.effective_format, counter, self.today())
        return IssuedNumber(counter=counter, number=number)

    def preview(self, config: AgencyConfig) -> IssuedNumber:
        """Number the next issuance would produce; nothing is consumed."""

        counter = config.invoice_counter + 1
        number = format_invoice_number(config.effective_format, counter, self.today())
        return IssuedNumber(counter=counter, number=number)


__all__ = [
    "COUNTER_FIELD",
    "InvoiceNumberIssuer",
    "SequenceStore",
    "format_invoice_number",
    "template_has_counter",
]
