# records.py
# SPDX-License-Identifier: MIT
"""Typed transaction records parsed from CSV field tuples.

The CSV reader hands over raw string tuples; :func:`parse_transaction`
turns one tuple into an immutable :class:`Transaction` or raises
:class:`RecordRejected` with a short machine-readable reason. Label
normalization lives here too so every extractor sees the same spelling of
a city, state, or merchant category code.
"""

from __future__ import annotations

import calendar
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import IntEnum

__all__ = [
    "UNKNOWN",
    "MIN_FIELDS",
    "CSV_COLUMNS",
    "US_STATES",
    "RecordRejected",
    "TimePeriod",
    "Transaction",
    "normalize_label",
    "normalize_mcc",
    "parse_amount_cents",
    "parse_timestamp",
    "channel_label",
    "parse_transaction",
]

UNKNOWN = "UNKNOWN"

CSV_COLUMNS = (
    "id",
    "date",
    "client_id",
    "card_id",
    "amount",
    "use_chip",
    "merchant_id",
    "merchant_city",
    "merchant_state",
    "zip",
    "mcc",
    "errors",
)
MIN_FIELDS = len(CSV_COLUMNS)

US_STATES = frozenset(
    {
        "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
        "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
        "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
        "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
        "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
        "DC",
    }
)

_BLANK_LABELS = frozenset({"", "NULL", "N/A", "NONE"})
_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class RecordRejected(ValueError):
    """Raised when an input row cannot become a valid record.

    Attributes:
        reason (str): Short identifier used to tally rejections.
    """

    def __init__(self, reason: str, detail: str | None = None) -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason


class TimePeriod(IntEnum):
    """Part of the day, valued by chronological rank."""

    MORNING = 1
    AFTERNOON = 2
    NIGHT = 3

    @classmethod
    def from_hour(cls, hour: int) -> TimePeriod:
        if hour < 12:
            return cls.MORNING
        if hour < 18:
            return cls.AFTERNOON
        return cls.NIGHT


def normalize_label(value: str | None) -> str:
    """Canonical spelling for a free-text dimension value.

    ``' "ny" '``, ``'NY '`` and ``'ny'`` all become ``'NY'``; blank and
    placeholder values become :data:`UNKNOWN`.
    """
    if value is None:
        return UNKNOWN
    text = value.strip().strip('"').strip("'").strip().upper()
    if text in _BLANK_LABELS:
        return UNKNOWN
    return text


def normalize_mcc(value: str | None) -> str:
    """Return the merchant category code if it is all digits, else UNKNOWN."""
    text = normalize_label(value)
    if text == UNKNOWN or not text.isdigit():
        return UNKNOWN
    return text


def parse_amount_cents(raw: str) -> int:
    """Convert a dollar string such as ``"$-1,234.565"`` to integer cents.

    Rounds half away from zero at the cent.

    Raises:
        RecordRejected: If the value is not a decimal amount.
    """
    cleaned = raw.strip().strip('"').replace("$", "").replace(",", "").replace(" ", "")
    if not cleaned:
        raise RecordRejected("bad_amount", repr(raw))
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        raise RecordRejected("bad_amount", repr(raw)) from None
    if not value.is_finite():
        raise RecordRejected("bad_amount", repr(raw))
    return int((value * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_timestamp(raw: str) -> datetime:
    try:
        return datetime.strptime(raw.strip().strip('"'), _TIMESTAMP_FORMAT)
    except ValueError:
        raise RecordRejected("bad_timestamp", repr(raw)) from None


def channel_label(use_chip: str) -> str:
    """Map the raw ``use_chip`` column to a display channel."""
    text = use_chip.strip().lower()
    if "online" in text:
        return "Online Transaction"
    if "chip" in text:
        return "Chip Transaction"
    if "swipe" in text:
        return "Swipe Transaction"
    if "contactless" in text:
        return "Contactless Transaction"
    return "Unknown Transaction"


# Convention: hot-path dataclasses use slots=True to reduce per-instance overhead.
@dataclass(frozen=True, slots=True)
class Transaction:
    """One parsed card transaction.

    Labels are already normalized; ``amount_cents`` is exact.
    """

    tx_id: str
    timestamp: datetime
    client_id: str
    card_id: str
    amount_cents: int
    use_chip: str
    merchant_id: str
    merchant_city: str
    merchant_state: str
    zip_code: str
    mcc: str
    errors: str

    @property
    def online(self) -> bool:
        return "online" in self.use_chip.lower()

    @property
    def swipe(self) -> bool:
        return "swipe" in self.use_chip.lower()

    @property
    def has_error(self) -> bool:
        return normalize_label(self.errors) != UNKNOWN

    @property
    def is_chargeback(self) -> bool:
        return self.amount_cents < 0

    @property
    def period(self) -> TimePeriod:
        return TimePeriod.from_hour(self.timestamp.hour)

    @property
    def epoch_seconds(self) -> int:
        # Timestamps carry no zone; treat them as UTC.
        return calendar.timegm(self.timestamp.timetuple())

    @property
    def channel(self) -> str:
        return channel_label(self.use_chip)

    @property
    def is_domestic(self) -> bool:
        return self.merchant_state in US_STATES


def parse_transaction(fields: Sequence[str]) -> Transaction:
    """Build a :class:`Transaction` from one CSV row.

    Args:
        fields (Sequence[str]): Raw column values in :data:`CSV_COLUMNS`
            order. Extra trailing columns are ignored.

    Returns:
        Transaction: The parsed record.

    Raises:
        RecordRejected: If required columns are missing or malformed.
    """
    if len(fields) < MIN_FIELDS:
        raise RecordRejected("too_few_fields", f"{len(fields)} < {MIN_FIELDS}")
    tx_id = fields[0].strip()
    client_id = fields[2].strip()
    if not tx_id or not client_id:
        raise RecordRejected("missing_id")
    return Transaction(
        tx_id=tx_id,
        timestamp=parse_timestamp(fields[1]),
        client_id=client_id,
        card_id=fields[3].strip(),
        amount_cents=parse_amount_cents(fields[4]),
        use_chip=fields[5].strip(),
        merchant_id=normalize_label(fields[6]),
        merchant_city=normalize_label(fields[7]),
        merchant_state=normalize_label(fields[8]),
        zip_code=fields[9].strip(),
        mcc=normalize_mcc(fields[10]),
        errors=fields[11].strip(),
    )
