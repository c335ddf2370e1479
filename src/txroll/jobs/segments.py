# segments.py
# SPDX-License-Identifier: MIT
"""Entity classification rolled up by each entity's predominant state.

Each job here has the same two-stage shape:

1. group transactions by entity (merchant or client) into an
   :class:`~txroll.core.aggregate.ActivityProfile`, classify the profile,
   and emit a :class:`~txroll.core.codec.Verdict` keyed by the entity's
   predominant state;
2. regroup the verdicts by state into a
   :class:`~txroll.core.aggregate.SegmentSummary` of tier tallies.
"""

from __future__ import annotations

import functools
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ..core.aggregate import ActivityProfile, PartialAggregator, SegmentSummary
from ..core.classify import (
    Severity,
    behavior_metrics,
    classify_behavior,
    classify_merchant_health,
    classify_merchant_risk,
    classify_rfm,
    merchant_metrics,
    rfm_metrics,
)
from ..core.codec import StageResult, Verdict
from ..core.keys import Key, by_client, by_merchant, by_result_key
from ..core.records import UNKNOWN
from ..core.stages import Stage
from ..core.thresholds import Thresholds
from ..core.topk import TopKEntry, TopKSet, predominant, top_counts
from .common import PROFILES, basis_points

__all__ = [
    "MerchantMember",
    "tier_member",
    "merchant_health",
    "rfm_by_state",
    "client_behavior",
]

_HIGH = Severity.HIGH.name


def _home(profile: ActivityProfile) -> dict[str, str]:
    return {
        "state": predominant(profile.states, UNKNOWN),
        "city": predominant(profile.cities, UNKNOWN),
    }


def _rates(profile: ActivityProfile) -> dict[str, int]:
    return {
        "error_bp": basis_points(profile.error_count, profile.count),
        "online_bp": basis_points(profile.online_count, profile.count),
    }


# ---------------------------------------------------------------------------
# merchant-health
# ---------------------------------------------------------------------------

def _merchant_verdict(key: Key, profile: ActivityProfile, thresholds: Thresholds) -> Iterable[tuple[Key, Any]]:
    m = merchant_metrics(profile)
    home = _home(profile)
    verdict = Verdict(
        entity=str(key),
        category=classify_merchant_risk(profile, thresholds).name,
        grade=classify_merchant_health(profile, thresholds).name,
        metrics={
            "revenue_cents": m["revenue_cents"],
            "tx": m["tx"],
            "avg_cents": m["avg_cents"],
            "max_cents": m["max_cents"],
            **_rates(profile),
        },
        labels=home,
    )
    return ((home["state"], verdict),)


@dataclass(frozen=True)
class MerchantMember:
    """One classified merchant as a single-member state summary."""

    top_k: int

    def __call__(self, result: StageResult) -> SegmentSummary:
        v: Verdict = result.payload
        tallies = {
            "health": {v.grade or "C": 1},
            "risk": {v.category: 1},
        }
        if v.category == _HIGH:
            tallies["hotspots"] = {v.labels.get("city", UNKNOWN): 1}
        revenue = v.metrics.get("revenue_cents", 0)
        return SegmentSummary(
            members=1,
            score_total=revenue,
            tallies=tallies,
            top=TopKSet.of(self.top_k, (TopKEntry(v.entity, revenue),)),
        )


@dataclass(frozen=True)
class MinimumMembers:
    """Finalizer that drops segments with fewer than ``minimum`` members."""

    minimum: int

    def __call__(self, key: Key, summary: SegmentSummary, thresholds: Thresholds) -> Iterable[tuple[Key, Any]]:
        if summary.members < self.minimum:
            return ()
        return ((key, summary),)


def merchant_health(thresholds: Thresholds) -> list[Stage]:
    top_k = thresholds.get_int("top.merchants.k")
    return [
        Stage(
            "merchant_profiles",
            by_merchant,
            PROFILES,
            finalize=_merchant_verdict,
        ),
        Stage(
            "state_merchant_health",
            by_result_key,
            PartialAggregator(functools.partial(SegmentSummary.identity, top_k), MerchantMember(top_k)),
            finalize=MinimumMembers(thresholds.get_int("min.state.merchants")),
            accepts=(Verdict.kind,),
        ),
    ]


# ---------------------------------------------------------------------------
# rfm-by-state and client-behavior
# ---------------------------------------------------------------------------

def _rfm_verdict(key: Key, profile: ActivityProfile, thresholds: Thresholds) -> Iterable[tuple[Key, Any]]:
    m = rfm_metrics(profile, thresholds.get_date("rfm.reference.date"))
    metrics = {"frequency": m["frequency"], "avg_cents": m["avg_cents"], "total_cents": profile.total_cents}
    if m["recency_days"] is not None:
        metrics["recency_days"] = m["recency_days"]
    home = _home(profile)
    verdict = Verdict(
        entity=str(key),
        category=classify_rfm(profile, thresholds).name,
        metrics=metrics,
        labels=home,
    )
    return ((home["state"], verdict),)


def _behavior_verdict(key: Key, profile: ActivityProfile, thresholds: Thresholds) -> Iterable[tuple[Key, Any]]:
    m = behavior_metrics(profile)
    home = _home(profile)
    verdict = Verdict(
        entity=str(key),
        category=classify_behavior(profile, thresholds).name,
        metrics={"tx": profile.count, "avg_cents": m["avg_cents"], "max_cents": m["max_cents"], **_rates(profile)},
        labels=home,
    )
    return ((home["state"], verdict),)


def tier_member(result: StageResult) -> SegmentSummary:
    """One classified client as a single-member state summary.

    ``tallies["cities"]`` counts the home cities of HIGH-tier clients only.
    """
    v: Verdict = result.payload
    tallies = {"tier": {v.category: 1}}
    if v.category == _HIGH:
        tallies["cities"] = {v.labels.get("city", UNKNOWN): 1}
    return SegmentSummary(members=1, score_total=v.score, tallies=tallies)


@dataclass(frozen=True)
class TopHighCities:
    """Finalizer that publishes the top ``k`` HIGH-tier cities of a state."""

    k: int

    def __call__(self, key: Key, summary: SegmentSummary, thresholds: Thresholds) -> Iterable[tuple[Key, Any]]:
        ranked = SegmentSummary(
            members=summary.members,
            score_total=summary.score_total,
            tallies=summary.tallies,
            top=top_counts(summary.tally("cities"), self.k),
        )
        return ((key, ranked),)


def _client_tiers(name: str, finalize, top_name: str, thresholds: Thresholds) -> list[Stage]:
    return [
        Stage(
            f"{name}_clients",
            by_client,
            PROFILES,
            finalize=finalize,
        ),
        Stage(
            f"{name}_by_state",
            by_result_key,
            PartialAggregator(SegmentSummary.identity, tier_member),
            finalize=TopHighCities(thresholds.get_int(top_name)),
            accepts=(Verdict.kind,),
        ),
    ]


def rfm_by_state(thresholds: Thresholds) -> list[Stage]:
    return _client_tiers("rfm", _rfm_verdict, "rfm.top.cities", thresholds)


def client_behavior(thresholds: Thresholds) -> list[Stage]:
    return _client_tiers("behavior", _behavior_verdict, "behavior.top.cities", thresholds)
