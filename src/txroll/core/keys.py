# keys.py
# SPDX-License-Identifier: MIT
"""Grouping keys and the extractors that derive them.

An extractor maps one record to either a key or a :class:`Reject`. Keys are
plain strings or :class:`CompositeKey` values; composite keys order their
secondary dimension through an explicit rank table so that, for example,
MORNING < AFTERNOON < NIGHT regardless of spelling.

Extractors are module-level callables (or small frozen dataclasses) so they
pickle cleanly into process pools.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from .records import UNKNOWN, US_STATES, TimePeriod, Transaction, normalize_label

__all__ = [
    "Key",
    "Reject",
    "CompositeKey",
    "PERIOD_RANKS",
    "KeyExtractor",
    "key_token",
    "by_city",
    "by_client",
    "by_state",
    "by_country",
    "by_merchant",
    "by_channel",
    "by_error_mcc",
    "by_city_period",
    "by_result_key",
    "RequireValidMCC",
    "ConstantKey",
]


@dataclass(frozen=True, slots=True)
class Reject:
    """Extractor outcome for a record that cannot be keyed."""

    reason: str


PERIOD_RANKS: Mapping[str, int] = {p.name: int(p) for p in TimePeriod}


@functools.total_ordering
@dataclass(frozen=True, slots=True, eq=True)
class CompositeKey:
    """Two-dimension key ordered by (primary, rank(secondary), secondary).

    Use :meth:`ranked` rather than the constructor so the rank always comes
    from the table; labels missing from the table sort after every known
    label.
    """

    primary: str
    secondary: str
    rank: int = field(default=0)

    @classmethod
    def ranked(cls, primary: str, secondary: str, ranks: Mapping[str, int] = PERIOD_RANKS) -> CompositeKey:
        p = normalize_label(primary)
        s = normalize_label(secondary)
        return cls(p, s, ranks.get(s, len(ranks) + 1))

    def _order(self) -> tuple[str, int, str]:
        return (self.primary, self.rank, self.secondary)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, CompositeKey):
            return NotImplemented
        return self._order() < other._order()

    def __str__(self) -> str:
        return f"{self.primary}|{self.secondary}"


Key = Union[str, CompositeKey]
KeyExtractor = Callable[[Any], Union[Key, Reject]]


def key_token(key: Key) -> str:
    """Stable text form of a key, used for partitioning."""
    if isinstance(key, CompositeKey):
        return f"{key.primary}\x1f{key.secondary}"
    return key


# ---------------------------------------------------------------------------
# Transaction extractors
# ---------------------------------------------------------------------------

def by_city(tx: Transaction) -> Key | Reject:
    return tx.merchant_city


def by_client(tx: Transaction) -> Key | Reject:
    return tx.client_id


def by_state(tx: Transaction) -> Key | Reject:
    return tx.merchant_state


def by_country(tx: Transaction) -> Key | Reject:
    """Key foreign transactions by the country found in the state column."""
    if tx.merchant_state == UNKNOWN:
        return Reject("missing_location")
    if tx.merchant_state in US_STATES:
        return Reject("domestic")
    return tx.merchant_state


def by_merchant(tx: Transaction) -> Key | Reject:
    if tx.merchant_id == UNKNOWN:
        return Reject("missing_merchant")
    return tx.merchant_id


def by_channel(tx: Transaction) -> Key | Reject:
    return tx.channel


def by_error_mcc(tx: Transaction) -> Key | Reject:
    if tx.mcc == UNKNOWN:
        return Reject("invalid_mcc")
    if not tx.has_error:
        return Reject("no_error")
    return tx.mcc


def by_city_period(tx: Transaction) -> Key | Reject:
    return CompositeKey.ranked(tx.merchant_city, tx.period.name)


@dataclass(frozen=True)
class RequireValidMCC:
    """Reject records whose merchant category code is unusable."""

    extract: KeyExtractor

    def __call__(self, tx: Transaction) -> Key | Reject:
        if tx.mcc == UNKNOWN:
            return Reject("invalid_mcc")
        return self.extract(tx)


# ---------------------------------------------------------------------------
# Stage-result extractors
# ---------------------------------------------------------------------------

def by_result_key(result: Any) -> Key | Reject:
    """Regroup a previous stage's output under the key it was emitted with."""
    return result.key


@dataclass(frozen=True)
class ConstantKey:
    """Send every record to one group, e.g. for a global summary."""

    value: str = "ALL"

    def __call__(self, record: Any) -> Key | Reject:
        return self.value
