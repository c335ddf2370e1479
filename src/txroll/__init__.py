# __init__.py
# SPDX-License-Identifier: MIT
"""
Top-level package exports for :mod:`txroll`.

Public surface and stability
----------------------------
txroll exposes a small stable API for most callers. The symbols listed in
:data:`PRIMARY_API` are the recommended public surface and are exported via
:data:`__all__`. In general, callers should:

- Build a configuration via :class:`TxrollConfig` or load one from TOML/JSON
  with :func:`load_config_from_path`.
- Run a registered job with :func:`run_job`, or build a
  :class:`StagePipeline` from :class:`Stage` objects directly.
- Consume the final results from the returned :class:`PipelineReport`, or
  the per-stage JSONL files written under ``output.out_dir``.

Jobs
----
Jobs are named sequences of stages registered in a :class:`JobRegistry`.
The built-in jobs live in :mod:`txroll.jobs`; new jobs should be registered
on a registry rather than wired by hand inside the CLI.

Advanced / expert surface
-------------------------
Anything *not* listed in :data:`PRIMARY_API` should be treated as an expert
surface and may change between releases.

Examples:
    Run a built-in job over a CSV file::

        >>> from txroll import TxrollConfig, run_job
        >>> report = run_job("amount-by-city", ["transactions.csv"], config=TxrollConfig())
        >>> report.ok
        True
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Package version
# ---------------------------------------------------------------------------
try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("txroll")
except Exception:  # PackageNotFoundError or runtime env oddities
    __version__ = "0.0.0+unknown"


# ---------------------------------------------------------------------------
# Primary public API (stable; exported via __all__)
# ---------------------------------------------------------------------------
from .cli.runner import format_results, run_job
from .core.config import TxrollConfig, load_config_from_path
from .core.registries import JobRegistry, default_job_registry
from .core.stages import PipelineAborted, PipelineReport, PipelineState, Stage, StagePipeline

# ---------------------------------------------------------------------------
# Advanced / expert API (imported for convenience; not exported via __all__)
# ---------------------------------------------------------------------------
from .core.aggregate import (
    ActivityProfile,
    AggregationOverflow,
    AmountStats,
    CategoryCounts,
    PartialAggregator,
    SegmentSummary,
)
from .core.classify import Severity, first_match, bucket_by_score
from .core.codec import IntermediateCorrupt, StageResult, Verdict, decode_result, encode_result
from .core.grouping import ErrorRateExceeded, GroupingEngine, GroupingResult, StageStats
from .core.keys import CompositeKey, KeyExtractor, Reject
from .core.log import configure_logging, get_logger, temp_level
from .core.records import RecordRejected, TimePeriod, Transaction, parse_transaction
from .core.thresholds import DEFAULT_THRESHOLDS, Thresholds
from .core.topk import TopKEntry, TopKSet
from .sinks.sinks import GzipJSONLSink, JSONLSink, make_jsonl_sink
from .sources.csv_source import TransactionCSVSource
from .sources.jsonl_source import IntermediateJSONLSource

# ---------------------------------------------------------------------------
# Stable export list
# ---------------------------------------------------------------------------
PRIMARY_API = [
    "__version__",
    "run_job",
    "format_results",
    "TxrollConfig",
    "load_config_from_path",
    "JobRegistry",
    "default_job_registry",
    "Stage",
    "StagePipeline",
    "PipelineState",
    "PipelineReport",
    "PipelineAborted",
]

__all__ = list(PRIMARY_API)
