# rankings.py
# SPDX-License-Identifier: MIT
"""Top merchant categories per place and per time of day."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ..core.aggregate import CategoryCounts
from ..core.keys import Key, RequireValidMCC, by_city, by_city_period, by_country, by_result_key, by_state
from ..core.stages import Stage
from ..core.thresholds import Thresholds
from ..core.topk import top_counts
from .common import MCC_COUNTS, regroup

__all__ = [
    "TopCategories",
    "top_categories_by_city",
    "top_categories_by_state",
    "top_categories_by_country",
    "category_by_period",
]


@dataclass(frozen=True)
class TopCategories:
    """Finalizer emitting the ``k`` most frequent categories of a group."""

    k: int

    def __call__(self, key: Key, agg: CategoryCounts, thresholds: Thresholds) -> Iterable[tuple[Key, Any]]:
        return ((key, top_counts(agg.counts, self.k)),)


def _top_categories(name: str, extract, thresholds: Thresholds) -> list[Stage]:
    return [
        Stage(
            name,
            RequireValidMCC(extract),
            MCC_COUNTS,
            finalize=TopCategories(thresholds.get_int("top.k")),
        )
    ]


def top_categories_by_city(thresholds: Thresholds) -> list[Stage]:
    return _top_categories("top_categories_by_city", by_city, thresholds)


def top_categories_by_state(thresholds: Thresholds) -> list[Stage]:
    return _top_categories("top_categories_by_state", by_state, thresholds)


def top_categories_by_country(thresholds: Thresholds) -> list[Stage]:
    return _top_categories("top_categories_by_country", by_country, thresholds)


def category_by_period(thresholds: Thresholds) -> list[Stage]:
    """Two stages: count MCCs per (city, period), then rank them.

    Output is ordered by city and then chronologically by period through the
    composite key's rank table.
    """
    return [
        Stage("city_period_counts", RequireValidMCC(by_city_period), MCC_COUNTS),
        Stage(
            "city_period_ranking",
            by_result_key,
            regroup(CategoryCounts),
            finalize=TopCategories(thresholds.get_int("top.k")),
            accepts=(CategoryCounts.kind,),
        ),
    ]
