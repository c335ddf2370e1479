# common.py
# SPDX-License-Identifier: MIT
"""Aggregators and helpers shared by the built-in jobs.

Everything a worker process may receive is a module-level function, a bound
classmethod, or a frozen dataclass so that it pickles by reference.
"""

from __future__ import annotations

from typing import Any

from ..core.aggregate import ActivityProfile, AmountStats, CategoryCounts, PartialAggregator
from ..core.classify import Severity
from ..core.codec import StageResult

__all__ = [
    "AMOUNTS",
    "MCC_COUNTS",
    "PERIOD_COUNTS",
    "PROFILES",
    "payload_of",
    "regroup",
    "basis_points",
    "by_severity_desc",
]

AMOUNTS = PartialAggregator(AmountStats.identity, AmountStats.of_transaction)
MCC_COUNTS = PartialAggregator(CategoryCounts.identity, CategoryCounts.of_mcc)
PERIOD_COUNTS = PartialAggregator(CategoryCounts.identity, CategoryCounts.of_period)
PROFILES = PartialAggregator(ActivityProfile.identity, ActivityProfile.of_transaction)


def payload_of(result: StageResult) -> Any:
    return result.payload


def regroup(aggregate_type: type[Any]) -> PartialAggregator:
    """Aggregator that re-merges a previous stage's aggregates of one type."""
    return PartialAggregator(aggregate_type.identity, payload_of)


def basis_points(part: int, whole: int) -> int:
    """``part / whole`` in hundredths of a percent, truncated; 0 when empty."""
    if whole <= 0:
        return 0
    return part * 10000 // whole


def by_severity_desc(result: StageResult) -> tuple[int, str]:
    """Sort results keyed by a severity label, most severe first."""
    key = str(result.key)
    try:
        rank = Severity.from_label(key)
    except KeyError:
        return (1, key)
    return (-int(rank), key)
