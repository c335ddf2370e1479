# concurrency.py
# SPDX-License-Identifier: MIT
"""Bounded thread/process executors for shard folding.

The grouping engine submits shard batches here. At most ``window`` batches
are in flight at once, so a fast reader cannot queue an unbounded amount of
work ahead of slow workers; results come back in completion order.
"""
from __future__ import annotations

import os
import pickle
from collections.abc import Callable, Iterable
from concurrent.futures import (
    FIRST_COMPLETED,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, TypeVar

from .log import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from .config import PipelineConfig

log = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

EXECUTOR_KINDS = ("thread", "process", "auto")


@dataclass(frozen=True)
class ExecutorConfig:
    """Immutable worker-pool settings.

    Attributes:
        max_workers (int): Worker threads or processes.
        window (int): Maximum tasks in flight before submission blocks.
        kind (Literal["thread", "process"]): Pool implementation.
    """
    max_workers: int
    window: int
    kind: Literal["thread", "process"]

    @property
    def serial(self) -> bool:
        """True when work should run inline without a pool."""
        return self.max_workers <= 1


class Executor:
    """Run a function over items on a pool with a bounded submission window."""

    def __init__(self, cfg: ExecutorConfig) -> None:
        self.cfg = cfg

    def _make_pool(self):
        if self.cfg.max_workers < 1:
            raise ValueError("Executor requires max_workers >= 1")
        if self.cfg.kind == "process":
            return ProcessPoolExecutor(max_workers=self.cfg.max_workers)
        return ThreadPoolExecutor(max_workers=self.cfg.max_workers)

    def map_unordered(
        self,
        items: Iterable[T],
        fn: Callable[[T], R],
        on_result: Callable[[R], None],
        *,
        fail_fast: bool = True,
        on_error: Callable[[BaseException], None] | None = None,
    ) -> None:
        """Apply ``fn`` to every item and hand results to ``on_result``.

        ``on_result`` always runs on the calling thread, so it may update
        state that the workers never touch.

        Args:
            items (Iterable[T]): Work items; consumed lazily.
            fn (Callable[[T], R]): Worker function. Must be picklable for a
                process pool.
            on_result (Callable[[R], None]): Called per completed result.
            fail_fast (bool): Re-raise the first worker error, cancelling
                work that has not started.
            on_error (Callable[[BaseException], None] | None): Called for
                each worker error before ``fail_fast`` is considered.

        Raises:
            Exception: The first worker error when ``fail_fast`` is True.
        """
        window = max(self.cfg.window, self.cfg.max_workers)
        with self._make_pool() as pool:
            pending: set[Future[R]] = set()

            def _collect(done: Iterable[Future[R]]) -> None:
                for fut in done:
                    try:
                        result = fut.result()
                    except Exception as exc:
                        if on_error is not None:
                            on_error(exc)
                        if fail_fast:
                            for other in pending:
                                other.cancel()
                            raise
                        continue
                    on_result(result)

            for item in items:
                pending.add(pool.submit(fn, item))
                if len(pending) >= window:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    _collect(done)

            while pending:
                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                _collect(done)


def is_pickling_error(exc: BaseException) -> bool:
    """Heuristic for 'the process pool could not ship this callable'."""
    if isinstance(exc, pickle.PicklingError):
        return True
    return isinstance(exc, (TypeError, AttributeError)) and "pickle" in str(exc).lower()


def resolve_executor_config(pc: PipelineConfig) -> tuple[ExecutorConfig, bool]:
    """Derive pool settings from the pipeline config section.

    ``max_workers == 0`` means one worker per CPU; ``submit_window`` of None
    means four batches per worker; ``executor_kind == "auto"`` means
    threads.

    Returns:
        tuple[ExecutorConfig, bool]: Pool settings and the fail-fast flag.
    """
    max_workers = max(1, pc.max_workers or (os.cpu_count() or 1))
    window = pc.submit_window or (max_workers * 4)
    kind = (pc.executor_kind or "auto").strip().lower()
    if kind not in ("thread", "process"):
        kind = "thread"
    cfg = ExecutorConfig(max_workers=max_workers, window=max(window, max_workers), kind=kind)  # type: ignore[arg-type]
    return cfg, bool(pc.fail_fast)


__all__ = [
    "EXECUTOR_KINDS",
    "Executor",
    "ExecutorConfig",
    "is_pickling_error",
    "resolve_executor_config",
]
