# classify.py
# SPDX-License-Identifier: MIT
"""Threshold-driven classification of final aggregates.

Classification always runs in three steps: aggregate -> derived metrics
(rates, averages, recency) -> category. Two rule shapes are supported and
each job picks the one it needs:

* ordered predicate lists, evaluated most severe first, where the first
  satisfied rule wins (:func:`first_match`);
* additive point scoring across weighted factors, bucketed by score bands
  (:func:`score_points` and :func:`bucket_by_score`).

Everything here is a pure function of its inputs.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import IntEnum
from typing import Any, TypeVar

from .aggregate import ActivityProfile
from .records import UNKNOWN

__all__ = [
    "Severity",
    "HealthGrade",
    "Rule",
    "first_match",
    "ScoreTier",
    "ScoreFactor",
    "BandFactor",
    "Score",
    "score_points",
    "bucket_by_score",
    "client_risk_metrics",
    "classify_client_risk",
    "merchant_metrics",
    "classify_merchant_health",
    "classify_merchant_risk",
    "rfm_metrics",
    "classify_rfm",
    "behavior_metrics",
    "classify_behavior",
]

Metrics = Mapping[str, Any]
C = TypeVar("C")


class Severity(IntEnum):
    """Ordered risk or value level; a larger value is more severe."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_label(cls, label: str) -> Severity:
        return cls[label.strip().upper()]


class HealthGrade(IntEnum):
    """Merchant health grade; A > B > C."""

    C = 1
    B = 2
    A = 3

    @classmethod
    def from_label(cls, label: str) -> HealthGrade:
        return cls[label.strip().upper()]


@dataclass(frozen=True)
class Rule:
    """Assign ``category`` when ``when(metrics, thresholds)`` holds."""

    category: Any
    name: str
    when: Callable[[Metrics, Mapping[str, Any]], bool]


def first_match(rules: Sequence[Rule], metrics: Metrics, thresholds: Mapping[str, Any], default: C) -> C:
    """Return the category of the first satisfied rule, else ``default``."""
    for rule in rules:
        if rule.when(metrics, thresholds):
            return rule.category
    return default


@dataclass(frozen=True)
class ScoreTier:
    label: str
    threshold: str
    points: int


@dataclass(frozen=True)
class ScoreFactor:
    """Award the points of the strongest tier whose threshold ``metric`` exceeds.

    Tiers are listed strongest first; at most one tier fires.
    """

    metric: str
    tiers: tuple[ScoreTier, ...]
    fmt: str = "{value}"

    def evaluate(self, metrics: Metrics, thresholds: Mapping[str, Any]) -> tuple[int, str | None]:
        value = metrics[self.metric]
        for tier in self.tiers:
            if value > thresholds[tier.threshold]:
                return tier.points, f"{tier.label}[{self.fmt.format(value=value)}]"
        return 0, None


@dataclass(frozen=True)
class BandFactor:
    """Award points when ``metric`` falls outside the ``[lower, upper]`` band."""

    metric: str
    label: str
    lower: str
    upper: str
    points: int
    fmt: str = "{value}"

    def evaluate(self, metrics: Metrics, thresholds: Mapping[str, Any]) -> tuple[int, str | None]:
        value = metrics[self.metric]
        if value > thresholds[self.upper] or value < thresholds[self.lower]:
            return self.points, f"{self.label}[{self.fmt.format(value=value)}]"
        return 0, None


@dataclass(frozen=True)
class Score:
    points: int
    factors: tuple[str, ...]


def score_points(
    factors: Sequence[ScoreFactor | BandFactor],
    metrics: Metrics,
    thresholds: Mapping[str, Any],
) -> Score:
    """Sum the points of every factor that fires, keeping their labels in order."""
    total = 0
    labels: list[str] = []
    for factor in factors:
        points, label = factor.evaluate(metrics, thresholds)
        total += points
        if label:
            labels.append(label)
    return Score(points=total, factors=tuple(labels))


def bucket_by_score(
    points: int,
    bands: Sequence[tuple[C, str]],
    thresholds: Mapping[str, Any],
    default: C,
) -> C:
    """Map a score to the first band (highest first) whose floor it reaches."""
    for category, floor in bands:
        if points >= thresholds[floor]:
            return category
    return default


# ---------------------------------------------------------------------------
# Client risk: additive points
# ---------------------------------------------------------------------------

CLIENT_RISK_FACTORS: tuple[ScoreFactor | BandFactor, ...] = (
    ScoreFactor(
        "cities",
        (
            ScoreTier("HIGH_MOBILITY", "risk.mobility.high_cities", 15),
            ScoreTier("MEDIUM_MOBILITY", "risk.mobility.med_cities", 8),
        ),
        fmt="{value}_cities",
    ),
    ScoreFactor(
        "mccs",
        (
            ScoreTier("DIVERSE_MCC", "risk.mcc.high", 12),
            ScoreTier("VARIED_MCC", "risk.mcc.med", 6),
        ),
        fmt="{value}_categories",
    ),
    ScoreFactor(
        "cards",
        (
            ScoreTier("MULTIPLE_CARDS", "risk.cards.high", 20),
            ScoreTier("DUAL_CARDS", "risk.cards.med", 8),
        ),
        fmt="{value}_cards",
    ),
    ScoreFactor(
        "error_pct",
        (
            ScoreTier("HIGH_ERROR_RATE", "risk.error_pct.high", 25),
            ScoreTier("MEDIUM_ERROR_RATE", "risk.error_pct.med", 12),
        ),
        fmt="{value:.1f}%",
    ),
    ScoreFactor(
        "chargebacks",
        (
            ScoreTier("FREQUENT_CHARGEBACKS", "risk.chargebacks.high", 25),
            ScoreTier("CHARGEBACKS", "risk.chargebacks.med", 10),
        ),
    ),
    ScoreFactor(
        "avg_cents",
        (
            ScoreTier("HIGH_AVG_AMOUNT", "risk.avg.high_cents", 15),
            ScoreTier("MEDIUM_AVG_AMOUNT", "risk.avg.med_cents", 7),
        ),
        fmt="{value}_cents",
    ),
    BandFactor(
        "online_pct",
        "UNBALANCED_CHANNELS",
        lower="risk.online_pct.lower",
        upper="risk.online_pct.upper",
        points=10,
        fmt="{value:.0f}%_online",
    ),
)

CLIENT_RISK_BANDS: tuple[tuple[Severity, str], ...] = (
    (Severity.CRITICAL, "risk.score.critical"),
    (Severity.HIGH, "risk.score.high"),
    (Severity.MEDIUM, "risk.score.medium"),
)

NORMAL_BEHAVIOR = "NORMAL_BEHAVIOR"


def client_risk_metrics(profile: ActivityProfile) -> dict[str, Any]:
    """Derived metrics for client risk scoring.

    Online purchases carry the pseudo-city ``ONLINE``; it does not count
    toward mobility.
    """
    cities = [c for c in profile.cities if c not in ("ONLINE", UNKNOWN)]
    return {
        "cities": len(cities),
        "mccs": len([m for m in profile.mccs if m != UNKNOWN]),
        "cards": len(profile.cards),
        "error_pct": 100.0 * profile.rate(profile.error_count),
        "chargebacks": profile.chargeback_count,
        "avg_cents": profile.average_cents,
        # An empty profile sits inside the balanced band.
        "online_pct": 100.0 * profile.rate(profile.online_count) if profile.count else 50.0,
    }


def classify_client_risk(profile: ActivityProfile, thresholds: Mapping[str, Any]) -> tuple[Severity, Score]:
    """Score a client profile and bucket the score into a severity.

    Returns:
        tuple[Severity, Score]: The bucket and the score with its factor
        labels; an empty label list is reported as ``NORMAL_BEHAVIOR``.
    """
    score = score_points(CLIENT_RISK_FACTORS, client_risk_metrics(profile), thresholds)
    if not score.factors:
        score = Score(points=score.points, factors=(NORMAL_BEHAVIOR,))
    return bucket_by_score(score.points, CLIENT_RISK_BANDS, thresholds, Severity.LOW), score


# ---------------------------------------------------------------------------
# Merchant health (first match) and risk (any predicate escalates)
# ---------------------------------------------------------------------------

def merchant_metrics(profile: ActivityProfile) -> dict[str, Any]:
    return {
        "revenue_cents": profile.total_cents,
        "tx": profile.count,
        "avg_cents": profile.average_cents,
        "max_cents": profile.max_cents or 0,
        "error_rate": profile.rate(profile.error_count),
        "online_rate": profile.rate(profile.online_count),
    }


HEALTH_RULES: tuple[Rule, ...] = (
    Rule(HealthGrade.A, "revenue_high", lambda m, t: m["revenue_cents"] >= t["health.revenue.high_cents"]),
    Rule(HealthGrade.B, "revenue_med", lambda m, t: m["revenue_cents"] >= t["health.revenue.med_cents"]),
    Rule(
        HealthGrade.B,
        "steady_ticket",
        lambda m, t: m["tx"] >= t["health.tx.min_for_avg"] and m["avg_cents"] >= t["health.avg.med_cents"],
    ),
)

MERCHANT_RISK_RULES: tuple[Rule, ...] = (
    Rule(
        Severity.HIGH,
        "high",
        lambda m, t: (
            m["error_rate"] >= t["merchant.error.high"]
            or m["online_rate"] >= t["merchant.online.high"]
            or m["max_cents"] >= t["merchant.max.high_cents"]
        ),
    ),
    Rule(
        Severity.MEDIUM,
        "medium",
        lambda m, t: m["error_rate"] >= t["merchant.error.med"] or m["online_rate"] >= t["merchant.online.med"],
    ),
)


def classify_merchant_health(profile: ActivityProfile, thresholds: Mapping[str, Any]) -> HealthGrade:
    return first_match(HEALTH_RULES, merchant_metrics(profile), thresholds, HealthGrade.C)


def classify_merchant_risk(profile: ActivityProfile, thresholds: Mapping[str, Any]) -> Severity:
    return first_match(MERCHANT_RISK_RULES, merchant_metrics(profile), thresholds, Severity.LOW)


# ---------------------------------------------------------------------------
# Recency / frequency / monetary value tiers
# ---------------------------------------------------------------------------

def rfm_metrics(profile: ActivityProfile, reference: date) -> dict[str, Any]:
    """Recency in whole days (never negative), frequency, and average ticket."""
    if profile.last_ts is None:
        recency = None
    else:
        last_day = datetime.fromtimestamp(profile.last_ts, tz=timezone.utc).date()
        recency = max(0, (reference - last_day).days)
    return {
        "recency_days": recency,
        "frequency": profile.count,
        "avg_cents": profile.average_cents,
    }


def _recent(m: Metrics, limit: int) -> bool:
    return m["recency_days"] is not None and m["recency_days"] <= limit


RFM_RULES: tuple[Rule, ...] = (
    Rule(
        Severity.HIGH,
        "recent_and_valuable",
        lambda m, t: _recent(m, t["rfm.recency.high_days"])
        and (m["frequency"] >= t["rfm.freq.high"] or m["avg_cents"] >= t["rfm.monetary.high_cents"]),
    ),
    Rule(
        Severity.MEDIUM,
        "any_signal",
        lambda m, t: _recent(m, t["rfm.recency.med_days"])
        or m["frequency"] >= t["rfm.freq.med"]
        or m["avg_cents"] >= t["rfm.monetary.med_cents"],
    ),
)


def classify_rfm(profile: ActivityProfile, thresholds: Any) -> Severity:
    reference = thresholds.get_date("rfm.reference.date")
    return first_match(RFM_RULES, rfm_metrics(profile, reference), thresholds, Severity.LOW)


# ---------------------------------------------------------------------------
# Client behavior by channel
# ---------------------------------------------------------------------------

def behavior_metrics(profile: ActivityProfile) -> dict[str, Any]:
    return {
        "error_rate": profile.rate(profile.error_count),
        "online_rate": profile.rate(profile.online_count),
        "avg_cents": profile.average_cents,
        "max_cents": profile.max_cents or 0,
    }


BEHAVIOR_RULES: tuple[Rule, ...] = (
    Rule(
        Severity.HIGH,
        "high",
        lambda m, t: (
            (m["error_rate"] >= t["behavior.error.high"] and m["online_rate"] >= t["behavior.online.med"])
            or m["online_rate"] >= t["behavior.online.high"]
            or m["avg_cents"] >= t["behavior.avg.high_cents"]
            or m["max_cents"] >= t["behavior.max.high_cents"]
        ),
    ),
    Rule(
        Severity.MEDIUM,
        "medium",
        lambda m, t: m["error_rate"] >= t["behavior.error.med"] or m["online_rate"] >= t["behavior.online.med"],
    ),
)


def classify_behavior(profile: ActivityProfile, thresholds: Mapping[str, Any]) -> Severity:
    return first_match(BEHAVIOR_RULES, behavior_metrics(profile), thresholds, Severity.LOW)
