# __init__.py
# SPDX-License-Identifier: MIT
"""Built-in transaction jobs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .basic import (
    amount_by_city,
    amount_by_client,
    chip_usage,
    city_summary,
    city_time_period,
    errors_by_mcc,
    tx_count_by_state,
)
from .rankings import category_by_period, top_categories_by_city, top_categories_by_country, top_categories_by_state
from .risk import client_risk
from .segments import client_behavior, merchant_health, rfm_by_state

if TYPE_CHECKING:  # pragma: no cover
    from ..core.registries import JobRegistry

BUILTIN_JOBS = (
    ("amount-by-city", amount_by_city, "Transaction count and amount totals per merchant city"),
    ("city-summary", city_summary, "Busiest city and highest/lowest average ticket across cities"),
    ("amount-by-client", amount_by_client, "Transaction count and amount totals per client"),
    ("tx-count-by-state", tx_count_by_state, "Transaction count and amount totals per merchant state"),
    ("chip-usage", chip_usage, "Transactions per card channel (chip, swipe, online, ...)"),
    ("errors-by-mcc", errors_by_mcc, "Errored transactions per merchant category code"),
    ("city-time-period", city_time_period, "Morning/afternoon/night split and peak period per city"),
    ("top-categories-by-city", top_categories_by_city, "Top merchant categories per city"),
    ("top-categories-by-state", top_categories_by_state, "Top merchant categories per state"),
    ("top-categories-by-country", top_categories_by_country, "Top merchant categories per foreign country"),
    ("category-by-period", category_by_period, "Top merchant categories per city and time of day"),
    ("client-risk", client_risk, "Additive client risk scoring rolled up by severity"),
    ("merchant-health", merchant_health, "Merchant health grades and risk rolled up by state"),
    ("rfm-by-state", rfm_by_state, "Client recency/frequency/monetary tiers rolled up by state"),
    ("client-behavior", client_behavior, "Client channel-behavior risk tiers rolled up by state"),
)


def register_builtin_jobs(registry: JobRegistry) -> None:
    for name, factory, description in BUILTIN_JOBS:
        registry.register(name, factory, description=description)


__all__ = ["BUILTIN_JOBS", "register_builtin_jobs"]
