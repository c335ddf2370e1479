# topk.py
# SPDX-License-Identifier: MIT
"""Bounded top-K sets with deterministic tie-breaking.

Entries rank by value descending, then identifier ascending, so two runs
over the same data in a different order keep exactly the same survivors.
Sets are immutable; insert and merge return new sets.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

__all__ = ["TopKEntry", "TopKSet", "predominant", "top_counts"]


@dataclass(frozen=True, slots=True)
class TopKEntry:
    """An (identifier, value) pair competing for a top-K slot."""

    identifier: str
    value: int

    def rank_key(self) -> tuple[int, str]:
        return (-self.value, self.identifier)


def _ranked(entries: Iterable[TopKEntry], k: int) -> tuple[TopKEntry, ...]:
    if k <= 0:
        return ()
    return tuple(sorted(entries, key=TopKEntry.rank_key)[:k])


@dataclass(frozen=True, slots=True)
class TopKSet:
    """At most ``k`` entries, best first.

    Attributes:
        k (int): Capacity. ``0`` yields a set that is always empty.
        entries (tuple[TopKEntry, ...]): Retained entries in rank order.
    """

    kind: ClassVar[str] = "topk"

    k: int
    entries: tuple[TopKEntry, ...] = ()

    def __post_init__(self) -> None:
        if self.k < 0:
            raise ValueError(f"TopKSet.k must be >= 0; got {self.k}")
        if len(self.entries) > self.k:
            raise ValueError(f"TopKSet holds {len(self.entries)} entries but k={self.k}")

    @classmethod
    def empty(cls, k: int) -> TopKSet:
        return cls(k=k)

    @classmethod
    def of(cls, k: int, entries: Iterable[TopKEntry]) -> TopKSet:
        """Build a set from arbitrary entries, keeping the best ``k``."""
        return cls(k=k, entries=_ranked(entries, k))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def insert(self, entry: TopKEntry) -> TopKSet:
        """Return a new set with ``entry`` added and the weakest evicted.

        When values tie, the larger identifier is the one evicted.
        """
        return TopKSet(k=self.k, entries=_ranked((*self.entries, entry), self.k))

    def merge(self, other: TopKSet) -> TopKSet:
        """Concatenate, re-rank, and truncate two sets of the same bound.

        Raises:
            ValueError: If the two sets were built with different ``k``.
        """
        if other.k != self.k:
            raise ValueError(f"Cannot merge TopKSet k={self.k} with k={other.k}")
        if not other.entries:
            return self
        if not self.entries:
            return other
        return TopKSet(k=self.k, entries=_ranked((*self.entries, *other.entries), self.k))

    def identifiers(self) -> list[str]:
        return [e.identifier for e in self.entries]

    def to_dict(self) -> dict[str, Any]:
        return {"k": self.k, "entries": [[e.identifier, e.value] for e in self.entries]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TopKSet:
        k = data["k"]
        if type(k) is not int:
            raise TypeError(f"top-k bound must be an int; got {type(k).__name__}")
        entries = []
        for item in data["entries"]:
            ident, value = item
            if not isinstance(ident, str) or type(value) is not int:
                raise TypeError(f"malformed top-k entry {item!r}")
            entries.append(TopKEntry(ident, value))
        ranked = _ranked(entries, k)
        if list(ranked) != entries:
            raise ValueError("top-k entries are not in rank order")
        return cls(k=k, entries=ranked)


def top_counts(counts: Mapping[str, int], k: int) -> TopKSet:
    """Top ``k`` labels of a label -> count map."""
    return TopKSet.of(k, (TopKEntry(label, n) for label, n in counts.items()))


def predominant(counts: Mapping[str, int], default: str) -> str:
    """Label with the highest count; ties go to the smallest label."""
    best = top_counts(counts, 1).entries
    return best[0].identifier if best else default
