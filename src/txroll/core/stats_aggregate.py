# stats_aggregate.py
# SPDX-License-Identifier: MIT
"""
Aggregation helpers for StageStats.as_dict() and PipelineReport.as_dict()
outputs.

Runs over disjoint slices of the input (for example one run per input file)
produce one report each. Counters add up like partial aggregates; per-stage
key counts do not, because a key may appear in several slices, so they are
reported as the sum of per-slice keys and flagged as an upper bound.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .grouping import StageStats

_TERMINAL_ORDER = {"COMPLETED": 0, "PENDING": 1, "RUNNING": 2, "FAILED": 3}


def merge_stage_stats(stats_dicts: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """
    Merge a sequence of StageStats.as_dict()-style dictionaries.

    Raises:
        ValueError: If the dictionaries belong to differently named stages.
    """
    merged: StageStats | None = None
    for data in stats_dicts:
        stats = StageStats.from_dict(data)
        if merged is None:
            merged = stats
            continue
        if stats.stage and merged.stage and stats.stage != merged.stage:
            raise ValueError(f"Cannot merge stats of stage {stats.stage!r} into {merged.stage!r}.")
        merged = merged.merged(stats)
    return (merged or StageStats()).as_dict()


def merge_run_reports(reports: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """
    Merge PipelineReport.as_dict()-style dictionaries of the same job.

    Stages are matched by name and position. The merged state is the worst
    state seen, so one failed slice marks the whole merge as failed.
    """
    if not reports:
        return {"job": None, "state": "PENDING", "runs": 0, "stages": [], "outputs": [], "results": 0}
    job = reports[0].get("job")
    stage_lists: list[list[Mapping[str, Any]]] = []
    names: list[str] = []
    state = "COMPLETED"
    failed: list[str] = []
    outputs: list[str] = []
    results = 0
    for report in reports:
        if report.get("job") != job:
            raise ValueError(f"Cannot merge reports of job {report.get('job')!r} into {job!r}.")
        rstate = str(report.get("state", "PENDING"))
        if _TERMINAL_ORDER.get(rstate, 3) > _TERMINAL_ORDER.get(state, 3):
            state = rstate
        if report.get("failed_stage"):
            failed.append(str(report["failed_stage"]))
        outputs.extend(str(p) for p in report.get("outputs") or [])
        results += int(report.get("results", 0))
        for index, stage in enumerate(report.get("stages") or []):
            if index == len(stage_lists):
                stage_lists.append([])
                names.append(str(stage.get("stage", "")))
            elif stage.get("stage") != names[index]:
                raise ValueError(f"Stage {index} is {stage.get('stage')!r} here but {names[index]!r} elsewhere.")
            stage_lists[index].append(stage)
    return {
        "job": job,
        "state": state,
        "runs": len(reports),
        "failed_stages": sorted(set(failed)),
        "stages": [merge_stage_stats(group) for group in stage_lists],
        "keys_are_upper_bounds": len(reports) > 1,
        "outputs": outputs,
        "results": results,
    }


def merge_stats_documents(documents: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Merge report documents, or bare stage stats documents, read from disk."""
    if documents and all("job" in doc for doc in documents):
        return merge_run_reports(documents)
    return merge_stage_stats(documents)


__all__ = ["merge_stage_stats", "merge_run_reports", "merge_stats_documents"]
