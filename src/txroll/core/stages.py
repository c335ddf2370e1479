# stages.py
# SPDX-License-Identifier: MIT
"""Chained grouping stages and their run-level failure semantics.

A job is an ordered list of :class:`Stage` definitions. Each stage groups
its input with a :class:`~txroll.core.grouping.GroupingEngine`, finalizes
every (key, aggregate) pair into zero or more :class:`StageResult` values,
and encodes them one per line. The next stage consumes exactly those lines,
decoded again at the boundary, so every stage sees the same typed schema
whether its input came from memory or from a file on disk.

Stages are barriers: stage ``i + 1`` starts only after stage ``i`` has
merged every shard and flushed its output.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .aggregate import AggregationOverflow, PartialAggregator
from .codec import ResultDecoder, StageResult, encode_result
from .concurrency import resolve_executor_config
from .config import TxrollConfig
from .grouping import ErrorRateExceeded, GroupingEngine, StageStats
from .keys import Key, KeyExtractor
from .log import get_logger, stage_logger
from .records import parse_transaction
from .thresholds import Thresholds
from ..sinks.sinks import make_jsonl_sink
from ..sources.jsonl_source import IntermediateJSONLSource

log = get_logger(__name__)

Finalizer = Callable[[Key, Any, Thresholds], Iterable[tuple[Key, Any]]]


class PipelineState(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    FAILED = "FAILED"
    COMPLETED = "COMPLETED"


def emit_aggregate(key: Key, agg: Any, thresholds: Thresholds) -> Iterable[tuple[Key, Any]]:
    """Default finalizer: publish the aggregate under its own key."""
    return ((key, agg),)


@dataclass(frozen=True)
class Stage:
    """One grouping pass.

    Attributes:
        name (str): Stage name, used in output file names and logs.
        extract (KeyExtractor): Record -> key or reject.
        aggregator (PartialAggregator): Fold/merge definition.
        finalize (Finalizer): ``(key, aggregate, thresholds)`` -> emitted
            ``(key, payload)`` pairs. Emitting nothing drops the key.
        accepts (tuple[str, ...] | None): Payload kinds this stage takes
            from the previous stage; ignored for the first stage.
        order (Callable | None): Sort key over emitted results. Defaults to
            ordering by result key.
    """

    name: str
    extract: KeyExtractor
    aggregator: PartialAggregator
    finalize: Finalizer = emit_aggregate
    accepts: tuple[str, ...] | None = None
    order: Callable[[StageResult], Any] | None = None

    def sort_results(self, results: list[StageResult]) -> list[StageResult]:
        # Canonical order first so ties under a custom order stay deterministic.
        ordered = sorted(results, key=_canonical_order)
        if self.order is not None:
            ordered.sort(key=self.order)
        return ordered


def _failed_marker(output: Path) -> Path:
    return output.with_name(output.name + ".failed")


def _canonical_order(result: StageResult) -> tuple[Any, str]:
    return (result.key, getattr(result.payload, "entity", ""))


@dataclass
class PipelineReport:
    """Outcome of one job run: state, per-stage counters, and outputs."""

    job: str
    state: PipelineState = PipelineState.PENDING
    stages: list[StageStats] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    current_stage: str | None = None
    failed_stage: str | None = None
    failed_output: str | None = None
    error: str | None = None
    results: list[StageResult] = field(default_factory=list, repr=False)

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.COMPLETED

    def as_dict(self) -> dict[str, Any]:
        return {
            "job": self.job,
            "state": self.state.value,
            "current_stage": self.current_stage,
            "failed_stage": self.failed_stage,
            "failed_output": self.failed_output,
            "error": self.error,
            "stages": [s.as_dict() for s in self.stages],
            "outputs": list(self.outputs),
            "results": len(self.results),
        }


class PipelineAborted(RuntimeError):
    """A stage failed; later stages did not run."""

    def __init__(self, message: str, report: PipelineReport) -> None:
        super().__init__(message)
        self.report = report


class StagePipeline:
    """Run a job's stages in order as a PENDING -> RUNNING -> terminal machine.

    Args:
        job (str): Job name.
        stages (Sequence[Stage]): Stage definitions in execution order.
        config (TxrollConfig | None): Sharding, concurrency and output
            settings; defaults apply when omitted.
        thresholds (Thresholds | None): Classification cutoffs; built from
            ``config`` when omitted.
    """

    def __init__(
        self,
        job: str,
        stages: Sequence[Stage],
        *,
        config: TxrollConfig | None = None,
        thresholds: Thresholds | None = None,
    ) -> None:
        if not stages:
            raise ValueError("A pipeline needs at least one stage")
        names = [s.name for s in stages]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate stage names in {job}: {names}")
        self.job = job
        self.stages = list(stages)
        self.config = config or TxrollConfig()
        self.thresholds = thresholds if thresholds is not None else self.config.build_thresholds()
        self.report = PipelineReport(job=job)

    @property
    def state(self) -> PipelineState:
        return self.report.state

    @property
    def stage_names(self) -> list[str]:
        return [s.name for s in self.stages]

    def output_path(self, index: int) -> Path | None:
        """Where stage ``index`` writes its output, or None for memory only."""
        out_dir = self.config.output.out_dir
        if out_dir is None:
            return None
        name = f"{index + 1:02d}_{self.stages[index].name}.jsonl"
        if self.config.output.compress:
            name += ".gz"
        return Path(out_dir) / self.job / name

    def run(self, records: Iterable[Any], *, start: int = 0) -> PipelineReport:
        """Run stages ``start..`` over ``records``.

        With ``start == 0`` the records are raw transaction field rows.
        With ``start > 0`` they are encoded result lines emitted by stage
        ``start - 1``, for example replayed from a file, and are decoded
        like any other intermediate input.

        Raises:
            PipelineAborted: If any stage fails; ``.report`` says which one.
            RuntimeError: If this pipeline already ran.
        """
        if self.report.state is not PipelineState.PENDING:
            raise RuntimeError(f"Pipeline {self.job} already ran (state={self.report.state.value})")
        if not 0 <= start < len(self.stages):
            raise ValueError(f"start must be in [0, {len(self.stages)}); got {start}")

        report = self.report
        report.state = PipelineState.RUNNING
        executor_cfg, fail_fast = resolve_executor_config(self.config.pipeline)
        current: Iterable[Any] = records
        results: list[StageResult] = []

        for index in range(start, len(self.stages)):
            stage = self.stages[index]
            slog = stage_logger(log, self.job, stage.name)
            report.current_stage = stage.name
            engine: GroupingEngine[Any] | None = None
            try:
                engine = self._engine(index, executor_cfg, fail_fast)
                results = self._run_stage(index, engine, current, slog)
            except Exception as exc:
                stats = engine.stats if engine is not None else StageStats(stage=stage.name)
                report.stages.append(stats)
                self._fail(stage, exc)
                if isinstance(exc, (AggregationOverflow, ErrorRateExceeded)):
                    slog.error("stage failed: %s", exc)
                else:
                    slog.exception("stage failed unexpectedly: %s", exc)
                self._mark_failed(index, stats)
                raise PipelineAborted(f"{self.job}: stage {stage.name} failed: {exc}", report) from exc
            report.stages.append(engine.stats)
            current = self._next_input(index, results)

        report.results = results
        report.state = PipelineState.COMPLETED
        report.current_stage = None
        self._drop_intermediate()
        self._log_summary()
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _engine(self, index, executor_cfg, fail_fast) -> GroupingEngine[Any]:
        stage = self.stages[index]
        first = index == 0
        pc = self.config.pipeline
        return GroupingEngine(
            stage.aggregator,
            stage.extract,
            parse=parse_transaction if first else ResultDecoder(stage.accepts),
            shard_count=pc.shard_count,
            executor=executor_cfg,
            batch_size=pc.batch_size,
            fail_fast=fail_fast,
            max_corrupt_rate=None if first else pc.max_corrupt_rate,
            stage_name=stage.name,
        )

    def _run_stage(self, index, engine, records, slog) -> list[StageResult]:
        stage = self.stages[index]
        slog.info("starting stage %d/%d", index + 1, len(self.stages))
        grouped = engine.run(records)
        stats = grouped.stats

        emitted: list[StageResult] = []
        for key, agg in grouped.aggregates.items():
            for out_key, payload in stage.finalize(key, agg, self.thresholds):
                emitted.append(StageResult(stage=stage.name, key=out_key, payload=payload))
        emitted = stage.sort_results(emitted)
        self._publish(index, emitted)

        slog.info(
            "finished: records=%d accepted=%d rejected=%d corrupt=%d keys=%d emitted=%d",
            stats.records,
            stats.accepted,
            stats.rejected,
            stats.corrupt,
            stats.keys,
            len(emitted),
        )
        return emitted

    def _publish(self, index: int, results: list[StageResult]) -> None:
        path = self.output_path(index)
        if path is None:
            return
        sink = make_jsonl_sink(path, compress=self.config.output.compress)
        with sink:
            sink.write_all(results)
        _failed_marker(sink.path).unlink(missing_ok=True)
        self.report.outputs.append(str(sink.path))

    def _mark_failed(self, index: int, stats: StageStats) -> None:
        """Leave ``<output>.failed`` holding the error and partial counters.

        The stage's real output is never published on failure, so this
        marker is the only artifact a failed stage leaves on disk.
        """
        path = self.output_path(index)
        if path is None:
            return
        marker = _failed_marker(path)
        doc = {
            "job": self.job,
            "stage": self.stages[index].name,
            "state": PipelineState.FAILED.value,
            "error": self.report.error,
            "stats": stats.as_dict(),
        }
        try:
            marker.parent.mkdir(parents=True, exist_ok=True)
            marker.write_text(json.dumps(doc, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        except OSError as exc:
            log.warning("Could not write failure marker %s: %s", marker, exc)
            return
        self.report.failed_output = str(marker)

    def _next_input(self, index: int, results: list[StageResult]) -> Iterable[str]:
        path = self.output_path(index)
        if path is None:
            return [encode_result(r) for r in results]
        return IntermediateJSONLSource([path])

    def _fail(self, stage: Stage, exc: BaseException) -> None:
        self.report.state = PipelineState.FAILED
        self.report.failed_stage = stage.name
        self.report.error = f"{type(exc).__name__}: {exc}"

    def _drop_intermediate(self) -> None:
        if self.config.output.keep_intermediate or len(self.report.outputs) < 2:
            return
        for path in self.report.outputs[:-1]:
            Path(path).unlink(missing_ok=True)
        self.report.outputs = self.report.outputs[-1:]

    def _log_summary(self) -> None:
        stats = self.report.stages
        problems = any(s.has_problems for s in stats)
        level = log.warning if problems else log.info
        level(
            "Job %s summary: stages=%d records=%d rejected=%d corrupt=%d results=%d",
            self.job,
            len(stats),
            stats[0].records if stats else 0,
            sum(s.rejected for s in stats),
            sum(s.corrupt for s in stats),
            len(self.report.results),
        )
        for s in stats:
            if s.rejected_by_reason:
                level("Job %s stage %s rejections: %s", self.job, s.stage, dict(sorted(s.rejected_by_reason.items())))


__all__ = [
    "Finalizer",
    "PipelineState",
    "Stage",
    "PipelineReport",
    "PipelineAborted",
    "StagePipeline",
    "emit_aggregate",
]
