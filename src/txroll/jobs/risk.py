# risk.py
# SPDX-License-Identifier: MIT
"""Three-stage client risk analysis.

1. ``client_profiles``: fold every transaction into a per-client
   :class:`~txroll.core.aggregate.ActivityProfile`.
2. ``client_scores``: score each profile with additive points, bucket the
   score into a severity, and emit a verdict keyed by that severity.
3. ``risk_segments``: roll the verdicts of each severity into a summary with
   the member count, the score total, factor tallies, and the top clients by
   score. Output runs from most to least severe.
"""

from __future__ import annotations

import functools
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ..core.aggregate import ActivityProfile, PartialAggregator, SegmentSummary
from ..core.classify import classify_client_risk, client_risk_metrics
from ..core.codec import StageResult, Verdict
from ..core.keys import Key, by_client, by_result_key
from ..core.stages import Stage
from ..core.thresholds import Thresholds
from ..core.topk import TopKEntry, TopKSet
from .common import PROFILES, by_severity_desc, regroup

__all__ = ["ClientRiskMember", "client_risk"]


def _factor_name(label: str) -> str:
    return label.split("[", 1)[0]


def _risk_verdict(key: Key, profile: ActivityProfile, thresholds: Thresholds) -> Iterable[tuple[Key, Any]]:
    severity, score = classify_client_risk(profile, thresholds)
    m = client_risk_metrics(profile)
    verdict = Verdict(
        entity=str(key),
        category=severity.name,
        score=score.points,
        factors=score.factors,
        metrics={
            "tx": profile.count,
            "total_cents": profile.total_cents,
            "avg_cents": m["avg_cents"],
            "cities": m["cities"],
            "mccs": m["mccs"],
            "cards": m["cards"],
            "chargebacks": m["chargebacks"],
            "error_bp": round(m["error_pct"] * 100),
            "online_bp": round(m["online_pct"] * 100),
        },
    )
    return ((severity.name, verdict),)


@dataclass(frozen=True)
class ClientRiskMember:
    """One scored client as a single-member segment summary."""

    top_k: int

    def __call__(self, result: StageResult) -> SegmentSummary:
        verdict: Verdict = result.payload
        factors: dict[str, int] = {}
        for label in verdict.factors:
            name = _factor_name(label)
            factors[name] = factors.get(name, 0) + 1
        return SegmentSummary(
            members=1,
            score_total=verdict.score,
            tallies={"factors": factors},
            top=TopKSet.of(self.top_k, (TopKEntry(verdict.entity, verdict.score),)),
        )


def client_risk(thresholds: Thresholds) -> list[Stage]:
    top_k = thresholds.get_int("risk.top.clients")
    return [
        Stage("client_profiles", by_client, PROFILES),
        Stage(
            "client_scores",
            by_result_key,
            regroup(ActivityProfile),
            finalize=_risk_verdict,
            accepts=(ActivityProfile.kind,),
            order=by_severity_desc,
        ),
        Stage(
            "risk_segments",
            by_result_key,
            PartialAggregator(functools.partial(SegmentSummary.identity, top_k), ClientRiskMember(top_k)),
            accepts=(Verdict.kind,),
            order=by_severity_desc,
        ),
    ]
