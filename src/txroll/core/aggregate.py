# aggregate.py
# SPDX-License-Identifier: MIT
"""Partial aggregates and the aggregator that folds records into them.

Every aggregate type exposes one in-place combine, ``merge_in``, and a pure
``merged`` built on top of it. The same combine serves as the shard-local
combiner and as the cross-shard reducer, so there is a single code path for
both. Money is integer cents throughout and every addition is range-checked
against a signed 64-bit bound.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, Protocol, TypeVar

from .records import Transaction
from .topk import TopKSet

__all__ = [
    "INT64_MIN",
    "INT64_MAX",
    "AggregationOverflow",
    "checked_add",
    "truncating_average",
    "Aggregate",
    "AmountStats",
    "CategoryCounts",
    "ActivityProfile",
    "SegmentSummary",
    "PartialAggregator",
    "AGGREGATE_TYPES",
]

INT64_MAX = 2**63 - 1
INT64_MIN = -(2**63)


class AggregationOverflow(ArithmeticError):
    """Raised when a running sum leaves the signed 64-bit range."""


def checked_add(left: int, right: int, *, what: str = "sum") -> int:
    """Add two integers, refusing to leave the signed 64-bit range.

    Raises:
        AggregationOverflow: If the result does not fit.
    """
    total = left + right
    if total > INT64_MAX or total < INT64_MIN:
        raise AggregationOverflow(f"{what} overflowed 64-bit range: {left} + {right}")
    return total


def truncating_average(total: int, count: int) -> int:
    """Integer mean rounded toward zero; 0 for an empty group."""
    if count <= 0:
        return 0
    quotient = abs(total) // count
    return quotient if total >= 0 else -quotient


def _merge_counts(target: dict[str, int], other: Mapping[str, int], *, what: str) -> None:
    for label, n in other.items():
        target[label] = checked_add(target.get(label, 0), n, what=what)


def _opt_max(a: int | None, b: int | None) -> int | None:
    if a is None:
        return b
    if b is None:
        return a
    return a if a >= b else b


def _opt_min(a: int | None, b: int | None) -> int | None:
    if a is None:
        return b
    if b is None:
        return a
    return a if a <= b else b


# Field readers shared by the from_dict constructors. They are strict about
# types so a float or a bool never sneaks in where an exact integer belongs.

def _req_int(data: Mapping[str, Any], name: str) -> int:
    value = data[name]
    if type(value) is not int:
        raise TypeError(f"{name} must be an int; got {type(value).__name__}")
    return value


def _opt_int(data: Mapping[str, Any], name: str) -> int | None:
    if data.get(name) is None:
        return None
    return _req_int(data, name)


def _count_map(data: Mapping[str, Any], name: str) -> dict[str, int]:
    raw = data.get(name) or {}
    if not isinstance(raw, Mapping):
        raise TypeError(f"{name} must be a mapping; got {type(raw).__name__}")
    out: dict[str, int] = {}
    for label, n in raw.items():
        if not isinstance(label, str) or type(n) is not int:
            raise TypeError(f"{name} entry {label!r}: {n!r} is not str -> int")
        out[label] = n
    return out


class Aggregate(Protocol):
    kind: ClassVar[str]

    @property
    def record_count(self) -> int: ...

    def merge_in(self, other: Any) -> Any: ...

    def merged(self, other: Any) -> Any: ...

    def to_dict(self) -> dict[str, Any]: ...


A = TypeVar("A", bound=Aggregate)


@dataclass(slots=True)
class AmountStats:
    """Count and cent totals for a group."""

    kind: ClassVar[str] = "amount_stats"

    count: int = 0
    total_cents: int = 0
    max_cents: int | None = None
    min_cents: int | None = None

    @classmethod
    def identity(cls) -> AmountStats:
        return cls()

    @classmethod
    def of(cls, amount_cents: int) -> AmountStats:
        return cls(count=1, total_cents=amount_cents, max_cents=amount_cents, min_cents=amount_cents)

    @classmethod
    def of_transaction(cls, tx: Transaction) -> AmountStats:
        return cls.of(tx.amount_cents)

    @property
    def record_count(self) -> int:
        return self.count

    @property
    def average_cents(self) -> int:
        return truncating_average(self.total_cents, self.count)

    def merge_in(self, other: AmountStats) -> AmountStats:
        self.count = checked_add(self.count, other.count, what="count")
        self.total_cents = checked_add(self.total_cents, other.total_cents, what="total_cents")
        self.max_cents = _opt_max(self.max_cents, other.max_cents)
        self.min_cents = _opt_min(self.min_cents, other.min_cents)
        return self

    def merged(self, other: AmountStats) -> AmountStats:
        return AmountStats(self.count, self.total_cents, self.max_cents, self.min_cents).merge_in(other)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total_cents": self.total_cents,
            "max_cents": self.max_cents,
            "min_cents": self.min_cents,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AmountStats:
        return cls(
            count=_req_int(data, "count"),
            total_cents=_req_int(data, "total_cents"),
            max_cents=_opt_int(data, "max_cents"),
            min_cents=_opt_int(data, "min_cents"),
        )


@dataclass(slots=True)
class CategoryCounts:
    """Label -> occurrence count, merged by union with per-label sums."""

    kind: ClassVar[str] = "category_counts"

    counts: dict[str, int] = field(default_factory=dict)

    @classmethod
    def identity(cls) -> CategoryCounts:
        return cls()

    @classmethod
    def of(cls, label: str) -> CategoryCounts:
        return cls({label: 1})

    @classmethod
    def of_mcc(cls, tx: Transaction) -> CategoryCounts:
        return cls.of(tx.mcc)

    @classmethod
    def of_period(cls, tx: Transaction) -> CategoryCounts:
        return cls.of(tx.period.name)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def record_count(self) -> int:
        return self.total

    def merge_in(self, other: CategoryCounts) -> CategoryCounts:
        _merge_counts(self.counts, other.counts, what="category count")
        return self

    def merged(self, other: CategoryCounts) -> CategoryCounts:
        return CategoryCounts(dict(self.counts)).merge_in(other)

    def to_dict(self) -> dict[str, Any]:
        return {"counts": dict(sorted(self.counts.items()))}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CategoryCounts:
        return cls(_count_map(data, "counts"))


_PROFILE_MAPS = ("cities", "states", "mccs", "cards")
_PROFILE_COUNTERS = ("count", "total_cents", "error_count", "online_count", "swipe_count", "chargeback_count")


@dataclass(slots=True)
class ActivityProfile:
    """Per-entity behavior profile (a client or a merchant).

    Holds counters, the amount extremes, the first and last activity time in
    epoch seconds, and label -> count maps for the places, categories, and
    cards the entity touched.
    """

    kind: ClassVar[str] = "activity_profile"

    count: int = 0
    total_cents: int = 0
    max_cents: int | None = None
    error_count: int = 0
    online_count: int = 0
    swipe_count: int = 0
    chargeback_count: int = 0
    first_ts: int | None = None
    last_ts: int | None = None
    cities: dict[str, int] = field(default_factory=dict)
    states: dict[str, int] = field(default_factory=dict)
    mccs: dict[str, int] = field(default_factory=dict)
    cards: dict[str, int] = field(default_factory=dict)

    @classmethod
    def identity(cls) -> ActivityProfile:
        return cls()

    @classmethod
    def of_transaction(cls, tx: Transaction) -> ActivityProfile:
        ts = tx.epoch_seconds
        return cls(
            count=1,
            total_cents=tx.amount_cents,
            max_cents=tx.amount_cents,
            error_count=int(tx.has_error),
            online_count=int(tx.online),
            swipe_count=int(tx.swipe),
            chargeback_count=int(tx.is_chargeback),
            first_ts=ts,
            last_ts=ts,
            cities={tx.merchant_city: 1},
            states={tx.merchant_state: 1},
            mccs={tx.mcc: 1},
            cards={tx.card_id: 1} if tx.card_id else {},
        )

    @property
    def record_count(self) -> int:
        return self.count

    @property
    def average_cents(self) -> int:
        return truncating_average(self.total_cents, self.count)

    def rate(self, counter: int) -> float:
        return counter / self.count if self.count else 0.0

    def merge_in(self, other: ActivityProfile) -> ActivityProfile:
        for name in _PROFILE_COUNTERS:
            setattr(self, name, checked_add(getattr(self, name), getattr(other, name), what=name))
        self.max_cents = _opt_max(self.max_cents, other.max_cents)
        self.first_ts = _opt_min(self.first_ts, other.first_ts)
        self.last_ts = _opt_max(self.last_ts, other.last_ts)
        for name in _PROFILE_MAPS:
            _merge_counts(getattr(self, name), getattr(other, name), what=name)
        return self

    def copy(self) -> ActivityProfile:
        clone = ActivityProfile(
            **{name: getattr(self, name) for name in _PROFILE_COUNTERS},
            max_cents=self.max_cents,
            first_ts=self.first_ts,
            last_ts=self.last_ts,
        )
        for name in _PROFILE_MAPS:
            setattr(clone, name, dict(getattr(self, name)))
        return clone

    def merged(self, other: ActivityProfile) -> ActivityProfile:
        return self.copy().merge_in(other)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {name: getattr(self, name) for name in _PROFILE_COUNTERS}
        data.update(max_cents=self.max_cents, first_ts=self.first_ts, last_ts=self.last_ts)
        for name in _PROFILE_MAPS:
            data[name] = dict(sorted(getattr(self, name).items()))
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ActivityProfile:
        profile = cls(
            **{name: _req_int(data, name) for name in _PROFILE_COUNTERS},
            max_cents=_opt_int(data, "max_cents"),
            first_ts=_opt_int(data, "first_ts"),
            last_ts=_opt_int(data, "last_ts"),
        )
        for name in _PROFILE_MAPS:
            setattr(profile, name, _count_map(data, name))
        return profile


@dataclass(slots=True)
class SegmentSummary:
    """Roll-up of classified entities inside one segment (state, tier, ...).

    ``tallies`` holds named label -> count maps such as ``{"risk": {"HIGH":
    3}}``; ``top`` keeps the strongest members by some value.
    """

    kind: ClassVar[str] = "segment_summary"

    members: int = 0
    score_total: int = 0
    tallies: dict[str, dict[str, int]] = field(default_factory=dict)
    top: TopKSet = field(default_factory=lambda: TopKSet.empty(0))

    @classmethod
    def identity(cls, top_k: int = 0) -> SegmentSummary:
        return cls(top=TopKSet.empty(top_k))

    @property
    def record_count(self) -> int:
        return self.members

    def tally(self, name: str) -> dict[str, int]:
        return self.tallies.get(name, {})

    def merge_in(self, other: SegmentSummary) -> SegmentSummary:
        self.members = checked_add(self.members, other.members, what="members")
        self.score_total = checked_add(self.score_total, other.score_total, what="score_total")
        for name, counts in other.tallies.items():
            _merge_counts(self.tallies.setdefault(name, {}), counts, what=name)
        self.top = self.top.merge(other.top)
        return self

    def merged(self, other: SegmentSummary) -> SegmentSummary:
        clone = SegmentSummary(
            members=self.members,
            score_total=self.score_total,
            tallies={name: dict(counts) for name, counts in self.tallies.items()},
            top=self.top,
        )
        return clone.merge_in(other)

    def to_dict(self) -> dict[str, Any]:
        return {
            "members": self.members,
            "score_total": self.score_total,
            "tallies": {name: dict(sorted(c.items())) for name, c in sorted(self.tallies.items())},
            "top": self.top.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SegmentSummary:
        raw_tallies = data.get("tallies") or {}
        if not isinstance(raw_tallies, Mapping):
            raise TypeError("tallies must be a mapping")
        return cls(
            members=_req_int(data, "members"),
            score_total=_req_int(data, "score_total"),
            tallies={str(name): _count_map(raw_tallies, name) for name in raw_tallies},
            top=TopKSet.from_dict(data["top"]),
        )


AGGREGATE_TYPES: dict[str, type[Any]] = {
    cls.kind: cls for cls in (AmountStats, CategoryCounts, ActivityProfile, SegmentSummary)
}


@dataclass(frozen=True)
class PartialAggregator(Generic[A]):
    """Fold records into aggregates of one type.

    ``accumulate`` is defined as merging in the single-record aggregate
    produced by ``observe``, so folding and merging can never disagree.

    Attributes:
        identity (Callable[[], A]): Builds the identity element.
        observe (Callable[[Any], A]): Builds the aggregate of one record.
    """

    identity: Callable[[], A]
    observe: Callable[[Any], A]

    def init(self) -> A:
        return self.identity()

    def accumulate(self, agg: A, record: Any) -> A:
        """Fold ``record`` into ``agg`` in place and return it."""
        return agg.merge_in(self.observe(record))

    def merge(self, left: A, right: A) -> A:
        """Combine two independent aggregates into a new one."""
        return left.merged(right)

    def fold(self, records: Iterable[Any]) -> A:
        agg = self.init()
        for record in records:
            agg = self.accumulate(agg, record)
        return agg
