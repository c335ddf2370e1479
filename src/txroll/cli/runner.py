# runner.py
# SPDX-License-Identifier: MIT
"""Orchestration helpers that bridge configuration, sources, and jobs."""
from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path
from typing import Any

from ..core.codec import StageResult, encode_result
from ..core.config import TxrollConfig
from ..core.registries import JobRegistry, default_job_registry
from ..core.stages import PipelineReport
from ..sources.csv_source import TransactionCSVSource
from ..sources.jsonl_source import IntermediateJSONLSource

__all__ = ["run_job", "format_results"]


def run_job(
    job: str,
    inputs: Sequence[str | Path],
    *,
    config: TxrollConfig | None = None,
    registry: JobRegistry | None = None,
    start: int = 0,
) -> PipelineReport:
    """Run a registered job over input files.

    Args:
        job (str): Registered job name.
        inputs (Sequence[str | Path]): Transaction CSV files, or with
            ``start > 0`` the persisted output of stage ``start - 1``.
        config (TxrollConfig | None): Run configuration; validated here.
        registry (JobRegistry | None): Job lookup; built-ins by default.
        start (int): Index of the first stage to run.

    Returns:
        PipelineReport: Completed report including the final results.

    Raises:
        PipelineAborted: If a stage fails.
    """
    cfg = config or TxrollConfig()
    cfg.validate()
    pipeline = (registry or default_job_registry()).build(job, cfg)
    paths = [Path(p) for p in inputs]
    records: Iterable[Any]
    if start == 0:
        src = cfg.source
        records = TransactionCSVSource(paths, delimiter=src.delimiter, encoding=src.encoding, has_header=src.has_header)
    else:
        records = IntermediateJSONLSource(paths, encoding=cfg.source.encoding)
    return pipeline.run(records, start=start)


def _payload_text(payload: Any) -> str:
    data = payload.to_dict()
    parts = []
    for name, value in data.items():
        if isinstance(value, dict):
            value = ",".join(f"{k}={v}" for k, v in value.items())
        elif isinstance(value, list):
            value = ",".join(str(v) for v in value)
        parts.append(f"{name}={value}")
    return " ".join(parts)


def format_results(results: Iterable[StageResult], fmt: str = "jsonl") -> Iterator[str]:
    """Render results as encoded JSON lines or tab-separated text lines."""
    if fmt == "jsonl":
        for result in results:
            yield encode_result(result)
    elif fmt == "text":
        for result in results:
            yield f"{result.key}\t{result.kind}\t{_payload_text(result.payload)}"
    else:
        raise ValueError(f"Unknown output format {fmt!r}; expected 'jsonl' or 'text'.")
