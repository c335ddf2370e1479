# basic.py
# SPDX-License-Identifier: MIT
"""Single-dimension roll-ups: amounts, counts, errors, and time of day."""

from __future__ import annotations

import functools
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..core.aggregate import AmountStats, CategoryCounts, PartialAggregator, SegmentSummary
from ..core.codec import StageResult, Verdict
from ..core.keys import ConstantKey, Key, by_channel, by_city, by_client, by_error_mcc, by_state
from ..core.records import TimePeriod
from ..core.stages import Stage
from ..core.thresholds import Thresholds
from ..core.topk import TopKEntry, TopKSet, top_counts
from .common import AMOUNTS, PERIOD_COUNTS, basis_points
from .mcc import describe_mcc, general_category

__all__ = [
    "amount_by_city",
    "amount_by_client",
    "tx_count_by_state",
    "chip_usage",
    "errors_by_mcc",
    "city_summary",
    "city_time_period",
]


def amount_by_city(thresholds: Thresholds) -> list[Stage]:
    return [Stage("amount_by_city", by_city, AMOUNTS)]


def amount_by_client(thresholds: Thresholds) -> list[Stage]:
    return [Stage("amount_by_client", by_client, AMOUNTS)]


def tx_count_by_state(thresholds: Thresholds) -> list[Stage]:
    return [Stage("tx_count_by_state", by_state, AMOUNTS)]


def chip_usage(thresholds: Thresholds) -> list[Stage]:
    return [Stage("chip_usage", by_channel, AMOUNTS)]


# ---------------------------------------------------------------------------
# errors-by-mcc
# ---------------------------------------------------------------------------

def _mcc_error_verdict(key: Key, agg: AmountStats, thresholds: Thresholds) -> Iterable[tuple[Key, Any]]:
    mcc = str(key)
    verdict = Verdict(
        entity=mcc,
        category=general_category(mcc),
        metrics={"errors": agg.count, "total_cents": agg.total_cents},
        labels={"description": describe_mcc(mcc)},
    )
    return ((key, verdict),)


def _most_errors_first(result: StageResult) -> tuple[int, str]:
    return (-result.payload.metrics["errors"], str(result.key))


def errors_by_mcc(thresholds: Thresholds) -> list[Stage]:
    return [Stage("errors_by_mcc", by_error_mcc, AMOUNTS, finalize=_mcc_error_verdict, order=_most_errors_first)]


# ---------------------------------------------------------------------------
# city-summary
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CityMember:
    """Turn one city's amount stats into a one-member summary.

    ``tallies["avg_cents"]`` collects city -> average ticket for cities with
    at least ``min_transactions`` transactions. Each city arrives once, so
    the union-sum merge of that map keeps the exact per-city averages.
    """

    min_transactions: int

    def __call__(self, result: StageResult) -> SegmentSummary:
        city = str(result.key)
        stats: AmountStats = result.payload
        tallies: dict[str, dict[str, int]] = {}
        if stats.count >= self.min_transactions:
            tallies["avg_cents"] = {city: stats.average_cents}
        return SegmentSummary(
            members=1,
            score_total=stats.count,
            tallies=tallies,
            top=TopKSet.of(1, (TopKEntry(city, stats.count),)),
        )


def _lowest(values: Mapping[str, int]) -> tuple[str, int] | None:
    if not values:
        return None
    return min(values.items(), key=lambda kv: (kv[1], kv[0]))


def _city_summary_verdict(key: Key, summary: SegmentSummary, thresholds: Thresholds) -> Iterable[tuple[Key, Any]]:
    busiest = summary.top.entries[0] if summary.top.entries else None
    averages = summary.tally("avg_cents")
    highest = top_counts(averages, 1).entries
    lowest = _lowest(averages)
    metrics = {
        "cities": summary.members,
        "transactions": summary.score_total,
        "eligible_cities": len(averages),
    }
    labels: dict[str, str] = {}
    if busiest is not None:
        metrics["busiest_count"] = busiest.value
        labels["busiest_city"] = busiest.identifier
    if highest:
        metrics["highest_avg_cents"] = highest[0].value
        labels["highest_avg_city"] = highest[0].identifier
    if lowest is not None:
        metrics["lowest_avg_cents"] = lowest[1]
        labels["lowest_avg_city"] = lowest[0]
    verdict = Verdict(
        entity=str(key),
        category=busiest.identifier if busiest else "NONE",
        score=summary.score_total,
        metrics=metrics,
        labels=labels,
    )
    return ((key, verdict),)


def city_summary(thresholds: Thresholds) -> list[Stage]:
    summarize = PartialAggregator(
        functools.partial(SegmentSummary.identity, 1),
        CityMember(thresholds.get_int("city.min_transactions")),
    )
    return [
        *amount_by_city(thresholds),
        Stage(
            "city_summary",
            ConstantKey("ALL"),
            summarize,
            finalize=_city_summary_verdict,
            accepts=(AmountStats.kind,),
        ),
    ]


# ---------------------------------------------------------------------------
# city-time-period
# ---------------------------------------------------------------------------

def peak_period(counts: Mapping[str, int]) -> TimePeriod | None:
    """Busiest period; ties go to the earlier period of the day."""
    best: TimePeriod | None = None
    for period in TimePeriod:
        n = counts.get(period.name, 0)
        if n > 0 and (best is None or n > counts.get(best.name, 0)):
            best = period
    return best


def _period_verdict(key: Key, agg: CategoryCounts, thresholds: Thresholds) -> Iterable[tuple[Key, Any]]:
    total = agg.total
    metrics = {"total": total}
    for period in TimePeriod:
        n = agg.counts.get(period.name, 0)
        metrics[period.name] = n
        metrics[f"{period.name}_bp"] = basis_points(n, total)
    peak = peak_period(agg.counts)
    verdict = Verdict(entity=str(key), category=peak.name if peak else "NONE", metrics=metrics)
    return ((key, verdict),)


def city_time_period(thresholds: Thresholds) -> list[Stage]:
    return [Stage("city_time_period", by_city, PERIOD_COUNTS, finalize=_period_verdict)]

