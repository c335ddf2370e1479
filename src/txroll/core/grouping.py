# grouping.py
# SPDX-License-Identifier: MIT
"""Partition, pre-aggregate, and merge one stage's records by key.

The flow for one stage is:

1. Read records on the calling thread, parse them, and extract a key.
   Rejections and undecodable lines are counted, never raised.
2. Buffer (key, record) pairs per shard (stable CRC-32 partitioning) and
   submit full buffers as batches to the executor.
3. Each batch is folded into a private key -> aggregate table (the
   combiner step).
4. Batch tables are merged into the final table on the calling thread with
   the same ``merge`` the combiner uses.

Counts are carried in a :class:`StageStats` value returned with the result,
never in module-level state.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .aggregate import AggregationOverflow, PartialAggregator
from .codec import IntermediateCorrupt
from .concurrency import Executor, ExecutorConfig, is_pickling_error
from .keys import Key, KeyExtractor, Reject
from .log import get_logger
from .records import RecordRejected
from .sharding import partition_counts, shard_for_key, shard_label

log = get_logger(__name__)

A = TypeVar("A")


class ErrorRateExceeded(RuntimeError):
    """Raised when a stage's share of corrupt input lines exceeds its limit."""


# Convention: hot-path dataclasses use slots=True to reduce per-instance overhead.
@dataclass(slots=True)
class StageStats:
    """Counters for one stage run.

    ``records`` counts every input item; each ends up in exactly one of
    ``accepted``, ``rejected`` or ``corrupt``.
    """

    stage: str = ""
    records: int = 0
    accepted: int = 0
    rejected: int = 0
    corrupt: int = 0
    keys: int = 0
    batches: int = 0
    rejected_by_reason: dict[str, int] = field(default_factory=dict)
    keys_per_shard: list[int] = field(default_factory=list)

    def reject(self, reason: str) -> None:
        self.rejected += 1
        self.rejected_by_reason[reason] = self.rejected_by_reason.get(reason, 0) + 1

    @property
    def corrupt_rate(self) -> float:
        return self.corrupt / self.records if self.records else 0.0

    @property
    def has_problems(self) -> bool:
        return bool(self.rejected or self.corrupt)

    def merged(self, other: StageStats) -> StageStats:
        """Combine stats of the same stage run over disjoint inputs."""
        reasons = dict(self.rejected_by_reason)
        for reason, n in other.rejected_by_reason.items():
            reasons[reason] = reasons.get(reason, 0) + n
        width = max(len(self.keys_per_shard), len(other.keys_per_shard))
        shards = [
            (self.keys_per_shard[i] if i < len(self.keys_per_shard) else 0)
            + (other.keys_per_shard[i] if i < len(other.keys_per_shard) else 0)
            for i in range(width)
        ]
        return StageStats(
            stage=self.stage or other.stage,
            records=self.records + other.records,
            accepted=self.accepted + other.accepted,
            rejected=self.rejected + other.rejected,
            corrupt=self.corrupt + other.corrupt,
            keys=self.keys + other.keys,
            batches=self.batches + other.batches,
            rejected_by_reason=reasons,
            keys_per_shard=shards,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "records": self.records,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "corrupt": self.corrupt,
            "keys": self.keys,
            "batches": self.batches,
            "rejected_by_reason": dict(sorted(self.rejected_by_reason.items())),
            "keys_per_shard": list(self.keys_per_shard),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StageStats:
        return cls(
            stage=str(data.get("stage", "")),
            records=int(data.get("records", 0)),
            accepted=int(data.get("accepted", 0)),
            rejected=int(data.get("rejected", 0)),
            corrupt=int(data.get("corrupt", 0)),
            keys=int(data.get("keys", 0)),
            batches=int(data.get("batches", 0)),
            rejected_by_reason={str(k): int(v) for k, v in (data.get("rejected_by_reason") or {}).items()},
            keys_per_shard=[int(n) for n in data.get("keys_per_shard") or []],
        )


@dataclass(frozen=True)
class _Batch:
    shard: int
    pairs: list[tuple[Key, Any]]


@dataclass
class _Folded:
    table: dict[Key, Any]
    folded: int
    weight: int


def _fold_batch(aggregator: PartialAggregator, batch: _Batch) -> _Folded:
    """Combine one batch into a fresh key -> aggregate table.

    ``weight`` is the summed ``record_count`` of the per-record aggregates,
    which the merged table must reproduce exactly.

    Module-level so process pools can pickle it via functools.partial.
    """
    table: dict[Key, Any] = {}
    weight = 0
    for key, record in batch.pairs:
        single = aggregator.observe(record)
        weight += single.record_count
        agg = table.get(key)
        if agg is None:
            agg = table[key] = aggregator.init()
        agg.merge_in(single)
    return _Folded(table=table, folded=len(batch.pairs), weight=weight)


@dataclass
class GroupingResult(Generic[A]):
    """Final per-key aggregates of one stage plus its counters."""

    aggregates: dict[Key, A]
    stats: StageStats

    def sorted_items(self) -> list[tuple[Key, A]]:
        return sorted(self.aggregates.items(), key=lambda kv: kv[0])


class GroupingEngine(Generic[A]):
    """Group one stage's records by key and merge them across shards.

    Args:
        aggregator (PartialAggregator): How records fold and merge.
        extract (KeyExtractor): Record -> key or :class:`Reject`.
        parse (Callable | None): Turns raw input into a record. May raise
            :class:`RecordRejected` or :class:`IntermediateCorrupt`.
        shard_count (int): Number of key partitions.
        executor (ExecutorConfig | None): Pool settings; None or a single
            worker folds batches inline.
        batch_size (int): Pairs buffered per shard before submission.
        fail_fast (bool): Cancel pending batches on the first worker error.
            With False the remaining batches still run, but the stage fails
            all the same once they finish.
        max_corrupt_rate (float | None): Tolerated share of corrupt input.
        stage_name (str): Name used in stats and log lines.
    """

    def __init__(
        self,
        aggregator: PartialAggregator,
        extract: KeyExtractor,
        *,
        parse: Callable[[Any], Any] | None = None,
        shard_count: int = 1,
        executor: ExecutorConfig | None = None,
        batch_size: int = 2048,
        fail_fast: bool = True,
        max_corrupt_rate: float | None = None,
        stage_name: str = "stage",
    ) -> None:
        if shard_count < 1:
            raise ValueError("shard_count must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.aggregator = aggregator
        self.extract = extract
        self.parse = parse
        self.shard_count = shard_count
        self.executor_cfg = executor
        self.batch_size = batch_size
        self.fail_fast = fail_fast
        self.max_corrupt_rate = max_corrupt_rate
        self.stage_name = stage_name
        # Counters of the current (or latest) run; still readable after a
        # run raised, so callers can report how far it got.
        self.stats = StageStats(stage=stage_name)
        self._last_corrupt: IntermediateCorrupt | None = None
        self._worker_errors: list[BaseException] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self, records: Iterable[Any]) -> GroupingResult[A]:
        """Partition ``records`` by key hash, fold, and merge."""
        stats = self._reset()
        batches = self._partitioned_batches(records, stats)
        return self._finish(self._merge(batches, stats), stats)

    def run_shards(self, shards: Iterable[Iterable[Any]]) -> GroupingResult[A]:
        """Fold caller-provided shards independently, then merge by key.

        Unlike :meth:`run`, records sharing a key may sit in different
        shards; the merge step reconciles them.
        """
        stats = self._reset()
        batches = self._shard_batches(shards, stats)
        return self._finish(self._merge(batches, stats), stats)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _reset(self) -> StageStats:
        self.stats = StageStats(stage=self.stage_name)
        self._last_corrupt = None
        self._worker_errors = []
        return self.stats

    def _keyed(self, raw: Any, stats: StageStats) -> tuple[Key, Any] | None:
        """Parse and key one input item, counting it if it is dropped."""
        stats.records += 1
        try:
            record = self.parse(raw) if self.parse is not None else raw
        except RecordRejected as exc:
            stats.reject(exc.reason)
            return None
        except IntermediateCorrupt as exc:
            stats.corrupt += 1
            self._last_corrupt = exc
            if stats.corrupt <= 5:
                log.warning("%s: skipping corrupt input: %s", self.stage_name, exc)
            return None
        key = self.extract(record)
        if isinstance(key, Reject):
            stats.reject(key.reason)
            return None
        stats.accepted += 1
        return key, record

    def _partitioned_batches(self, records: Iterable[Any], stats: StageStats) -> Iterator[_Batch]:
        buffers: list[list[tuple[Key, Any]]] = [[] for _ in range(self.shard_count)]
        for raw in records:
            pair = self._keyed(raw, stats)
            if pair is None:
                continue
            shard = shard_for_key(pair[0], self.shard_count)
            buf = buffers[shard]
            buf.append(pair)
            if len(buf) >= self.batch_size:
                yield _Batch(shard, buf)
                buffers[shard] = []
        for shard, buf in enumerate(buffers):
            if buf:
                yield _Batch(shard, buf)

    def _shard_batches(self, shards: Iterable[Iterable[Any]], stats: StageStats) -> Iterator[_Batch]:
        for index, shard in enumerate(shards):
            buf: list[tuple[Key, Any]] = []
            for raw in shard:
                pair = self._keyed(raw, stats)
                if pair is None:
                    continue
                buf.append(pair)
                if len(buf) >= self.batch_size:
                    yield _Batch(index, buf)
                    buf = []
            if buf:
                yield _Batch(index, buf)

    def _merge(self, batches: Iterable[_Batch], stats: StageStats) -> tuple[dict[Key, A], int, int]:
        """Fold batches and merge their tables.

        Returns:
            tuple: The final table, the number of records folded, and their
            summed single-record weight.
        """
        final: dict[Key, A] = {}
        totals = [0, 0]
        merge = self.aggregator.merge

        def _on_result(folded: _Folded) -> None:
            stats.batches += 1
            totals[0] += folded.folded
            totals[1] += folded.weight
            for key, agg in folded.table.items():
                current = final.get(key)
                # The batch table is discarded after this call, so the first
                # aggregate for a key can be adopted without a copy.
                final[key] = agg if current is None else merge(current, agg)

        fold = functools.partial(_fold_batch, self.aggregator)
        cfg = self.executor_cfg
        if cfg is None or cfg.serial:
            for batch in batches:
                _on_result(fold(batch))
            return final, totals[0], totals[1]

        def _on_error(exc: BaseException) -> None:
            self._worker_errors.append(exc)
            if cfg.kind == "process" and is_pickling_error(exc):
                log.warning(
                    "%s: process pool could not pickle the stage callables; "
                    "use executor_kind='thread' or module-level extractors.",
                    self.stage_name,
                )
            else:
                log.error("%s: batch fold failed: %s", self.stage_name, exc)

        log.debug(
            "%s: folding with %d %s worker(s), window=%d",
            self.stage_name,
            cfg.max_workers,
            cfg.kind,
            cfg.window,
        )
        Executor(cfg).map_unordered(batches, fold, _on_result, fail_fast=self.fail_fast, on_error=_on_error)
        # fail_fast=False only lets the remaining batches finish; an overflow
        # still fails the stage, exactly as it does on the serial path.
        for exc in self._worker_errors:
            if isinstance(exc, AggregationOverflow):
                raise exc
        return final, totals[0], totals[1]

    def _finish(self, merged: tuple[dict[Key, A], int, int], stats: StageStats) -> GroupingResult[A]:
        final, folded, weight = merged
        stats.keys = len(final)
        stats.keys_per_shard = partition_counts(final, self.shard_count)
        self._check_corruption(stats)
        if folded != stats.accepted:
            cause = self._worker_errors[0] if self._worker_errors else None
            raise RuntimeError(
                f"{self.stage_name}: {stats.accepted - folded} of {stats.accepted} accepted "
                f"records were not aggregated"
            ) from cause
        aggregated = sum(agg.record_count for agg in final.values())  # type: ignore[attr-defined]
        if aggregated != weight:
            raise RuntimeError(
                f"{self.stage_name}: merged aggregates account for {aggregated} records "
                f"but {weight} were folded"
            )
        log.debug(
            "%s: shard key counts %s",
            self.stage_name,
            {shard_label(i): n for i, n in enumerate(stats.keys_per_shard)},
        )
        return GroupingResult(aggregates=final, stats=stats)

    def _check_corruption(self, stats: StageStats) -> None:
        limit = self.max_corrupt_rate
        if limit is None or stats.records <= 0 or stats.corrupt == 0:
            return
        rate = stats.corrupt_rate
        if rate > limit:
            msg = (
                f"Aborting stage {self.stage_name}: corrupt input rate {rate:.3f} exceeded "
                f"limit {limit:.3f} (corrupt={stats.corrupt}, records={stats.records})"
            )
            raise ErrorRateExceeded(msg) from self._last_corrupt


__all__ = ["ErrorRateExceeded", "StageStats", "GroupingResult", "GroupingEngine"]
