# main.py
# SPDX-License-Identifier: MIT

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

from ..core.concurrency import EXECUTOR_KINDS
from ..core.config import TxrollConfig, load_config_from_path
from ..core.log import configure_logging
from ..core.registries import default_job_registry
from ..core.stages import PipelineAborted
from ..core.stats_aggregate import merge_stats_documents
from ..core.thresholds import DEFAULT_THRESHOLDS, parse_threshold_assignments
from .runner import format_results, run_job


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level txroll CLI argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser for the CLI.
    """
    parser = argparse.ArgumentParser(prog="txroll", description="Grouped transaction roll-ups")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g., DEBUG, INFO, WARNING).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_p = subparsers.add_parser("run", help="Run a job over transaction CSV files.")
    run_p.add_argument("job", help="Registered job name (see `txroll jobs`).")
    run_p.add_argument("inputs", nargs="+", type=Path, help="Input CSV (.csv/.csv.gz) files.")
    run_p.add_argument("-c", "--config", help="Path to config file (TOML or JSON).")
    run_p.add_argument("--shards", type=int, help="Override pipeline.shard_count.")
    run_p.add_argument("--workers", type=int, help="Override pipeline.max_workers.")
    run_p.add_argument("--executor-kind", choices=list(EXECUTOR_KINDS), help="Override pipeline.executor_kind.")
    run_p.add_argument("--out-dir", type=Path, help="Write per-stage JSONL output under this directory.")
    run_p.add_argument(
        "--start",
        type=int,
        default=0,
        help="First stage to run; inputs are then the JSONL output of the stage before it.",
    )
    run_p.add_argument("--report", type=Path, help="Write the run report JSON here.")
    run_p.add_argument("--format", choices=["jsonl", "text"], default="jsonl", help="Result format on stdout.")
    run_p.add_argument(
        "-D",
        "--define",
        action="append",
        metavar="NAME=VALUE",
        help="Override a threshold (repeatable).",
    )

    subparsers.add_parser("jobs", help="List registered jobs and their stages.")
    subparsers.add_parser("thresholds", help="Print the default thresholds as JSON.")

    merge_p = subparsers.add_parser("merge-stats", help="Merge report or stats JSON files.")
    merge_p.add_argument("stats_files", nargs="+", type=Path, help="Paths to report/stats JSON files.")
    merge_p.add_argument("--output", "-o", type=Path, help="Output file (defaults to stdout).")

    return parser


def _apply_run_overrides(cfg: TxrollConfig, args: argparse.Namespace) -> None:
    """Apply run-related CLI overrides to a config object in place."""
    if args.shards is not None:
        cfg.pipeline.shard_count = int(args.shards)
    if args.workers is not None:
        cfg.pipeline.max_workers = int(args.workers)
    if args.executor_kind:
        cfg.pipeline.executor_kind = args.executor_kind
    if args.out_dir is not None:
        cfg.output.out_dir = args.out_dir
    defines = parse_threshold_assignments(args.define)
    if defines:
        cfg.thresholds = {**cfg.thresholds, **defines}


def _write_report(path: Optional[Path], report_dict: dict) -> None:
    if path is None:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report_dict, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def _cmd_run(args: argparse.Namespace) -> int:
    cfg = load_config_from_path(args.config) if args.config else TxrollConfig()
    _apply_run_overrides(cfg, args)
    try:
        report = run_job(args.job, args.inputs, config=cfg, start=args.start)
    except PipelineAborted as exc:
        _write_report(args.report, exc.report.as_dict())
        raise
    for line in format_results(report.results, args.format):
        print(line)
    _write_report(args.report, report.as_dict())
    return 0


def _cmd_jobs() -> int:
    registry = default_job_registry()
    for name in registry.names():
        spec = registry.get(name)
        stages = ", ".join(s.name for s in registry.stages(name))
        print(f"{name}\t{spec.description}\t[{stages}]")
    return 0


def _cmd_merge_stats(args: argparse.Namespace) -> int:
    """Merge report/stats JSON files and write to stdout or a file."""
    documents = [json.loads(path.read_text("utf-8")) for path in args.stats_files]
    merged = merge_stats_documents(documents)
    text = json.dumps(merged, indent=2, sort_keys=True)
    if args.output:
        args.output.write_text(text + "\n", encoding="utf-8")
    else:
        print(text)
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    """Dispatch a parsed CLI command to its handler and return the exit code."""
    configure_logging(level=args.log_level)
    cmd = args.command

    if cmd == "run":
        return _cmd_run(args)

    if cmd == "jobs":
        return _cmd_jobs()

    if cmd == "thresholds":
        print(json.dumps(dict(DEFAULT_THRESHOLDS), indent=2, sort_keys=True))
        return 0

    if cmd == "merge-stats":
        return _cmd_merge_stats(args)

    print(f"Unknown command: {cmd}", file=sys.stderr)
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the txroll command-line interface.

    Args:
        argv (Sequence[str] | None): Optional list of argument strings to
            parse instead of ``sys.argv[1:]``. Primarily useful for tests.

    Returns:
        int: Process exit code, where 0 indicates success and non-zero
        values indicate failure.
    """
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    try:
        return _dispatch(args)
    except PipelineAborted as exc:
        print(f"Error: {exc}", file=sys.stderr)
        print(json.dumps(exc.report.as_dict(), indent=2, sort_keys=True), file=sys.stderr)
        return 1
    except Exception as exc:  # noqa: BLE001
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
