# thresholds.py
# SPDX-License-Identifier: MIT
"""Named business thresholds with documented defaults.

Classification code never hardcodes a cutoff; it asks a :class:`Thresholds`
mapping for a dotted name. Overrides come from the ``[thresholds]`` config
table or ``-D name=value`` on the command line and are coerced to the type
of the default they replace.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from datetime import date
from typing import Any

__all__ = ["DEFAULT_THRESHOLDS", "Thresholds", "parse_threshold_assignments"]

DEFAULT_THRESHOLDS: Mapping[str, int | float | str] = {
    # rankings
    "top.k": 3,
    "city.min_transactions": 10,
    # client risk: additive score
    "risk.mobility.high_cities": 5,
    "risk.mobility.med_cities": 3,
    "risk.mcc.high": 10,
    "risk.mcc.med": 6,
    "risk.cards.high": 3,
    "risk.cards.med": 1,
    "risk.error_pct.high": 20,
    "risk.error_pct.med": 10,
    "risk.chargebacks.high": 3,
    "risk.chargebacks.med": 0,
    "risk.avg.high_cents": 50000,
    "risk.avg.med_cents": 20000,
    "risk.online_pct.upper": 80,
    "risk.online_pct.lower": 20,
    "risk.score.critical": 86,
    "risk.score.high": 61,
    "risk.score.medium": 31,
    "risk.top.clients": 10,
    # merchant health and risk
    "health.revenue.high_cents": 2000000,
    "health.revenue.med_cents": 500000,
    "health.avg.med_cents": 8000,
    "health.tx.min_for_avg": 100,
    "merchant.error.high": 0.05,
    "merchant.error.med": 0.02,
    "merchant.online.high": 0.90,
    "merchant.online.med": 0.70,
    "merchant.max.high_cents": 500000,
    "top.merchants.k": 5,
    "min.state.merchants": 5,
    # recency / frequency / monetary value
    "rfm.reference.date": "2010-05-31",
    "rfm.recency.high_days": 30,
    "rfm.recency.med_days": 90,
    "rfm.freq.high": 900,
    "rfm.freq.med": 400,
    "rfm.monetary.high_cents": 20000,
    "rfm.monetary.med_cents": 8000,
    "rfm.top.cities": 10,
    # client behavior by channel
    "behavior.error.high": 0.05,
    "behavior.error.med": 0.02,
    "behavior.online.high": 0.80,
    "behavior.online.med": 0.60,
    "behavior.avg.high_cents": 10000,
    "behavior.max.high_cents": 50000,
    "behavior.top.cities": 5,
}


def _coerce(name: str, default: Any, value: Any) -> int | float | str:
    if isinstance(default, bool) or isinstance(value, bool):
        raise ValueError(f"Threshold {name!r} does not accept booleans")
    try:
        if isinstance(default, int):
            if isinstance(value, float) and not value.is_integer():
                raise ValueError
            return int(value)
        if isinstance(default, float):
            return float(value)
        text = str(value).strip()
        date.fromisoformat(text)
        return text
    except (TypeError, ValueError):
        raise ValueError(
            f"Threshold {name!r} expects a value like {default!r}; got {value!r}"
        ) from None


class Thresholds(Mapping[str, Any]):
    """Immutable flat mapping of threshold name to value.

    Args:
        overrides (Mapping[str, Any] | None): Values replacing the defaults.

    Raises:
        ValueError: For unknown names or values of the wrong type.
    """

    __slots__ = ("_values",)

    def __init__(self, overrides: Mapping[str, Any] | None = None) -> None:
        values = dict(DEFAULT_THRESHOLDS)
        unknown = sorted(set(overrides or {}) - set(values))
        if unknown:
            raise ValueError(f"Unknown threshold name(s): {', '.join(unknown)}")
        for name, value in (overrides or {}).items():
            values[name] = _coerce(name, DEFAULT_THRESHOLDS[name], value)
        self._values = values

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        changed = {k: v for k, v in self._values.items() if DEFAULT_THRESHOLDS[k] != v}
        return f"Thresholds({changed!r})"

    def __reduce__(self):
        return (Thresholds, (self.overrides(),))

    def get_int(self, name: str) -> int:
        return int(self._values[name])

    def get_float(self, name: str) -> float:
        return float(self._values[name])

    def get_date(self, name: str) -> date:
        return date.fromisoformat(str(self._values[name]))

    def overrides(self) -> dict[str, Any]:
        """Entries that differ from the defaults."""
        return {k: v for k, v in self._values.items() if DEFAULT_THRESHOLDS[k] != v}

    def with_overrides(self, overrides: Mapping[str, Any]) -> Thresholds:
        merged = self.overrides()
        merged.update(overrides)
        return Thresholds(merged)


def parse_threshold_assignments(items: list[str] | None) -> dict[str, str]:
    """Parse ``NAME=VALUE`` strings from the command line.

    Raises:
        ValueError: If an item has no ``=`` or an empty name.
    """
    out: dict[str, str] = {}
    for item in items or ():
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Expected NAME=VALUE, got {item!r}")
        out[name.strip()] = value.strip()
    return out
