# registries.py
# SPDX-License-Identifier: MIT
"""Registry of named jobs (stage-list factories)."""
from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from .config import TxrollConfig
from .log import get_logger
from .stages import Stage, StagePipeline
from .thresholds import Thresholds

log = get_logger(__name__)

JobFactory = Callable[[Thresholds], Sequence[Stage]]


@dataclass(frozen=True)
class JobSpec:
    """A registered job: its name, a one-line description, and its factory."""

    name: str
    factory: JobFactory
    description: str = ""


@dataclass
class JobRegistry:
    """Registry for job factories keyed by job name."""

    _jobs: dict[str, JobSpec] = field(default_factory=dict)

    def register(
        self,
        name: str,
        factory: JobFactory,
        *,
        description: str = "",
        replace: bool = False,
    ) -> None:
        """Register ``factory`` under ``name``.

        Raises:
            ValueError: If ``name`` is taken and ``replace`` is False.
        """
        if not replace and name in self._jobs:
            raise ValueError(f"Job {name!r} is already registered")
        self._jobs[name] = JobSpec(name=name, factory=factory, description=description)

    def get(self, name: str) -> JobSpec:
        try:
            return self._jobs[name]
        except KeyError:
            known = ", ".join(sorted(self._jobs)) or "none"
            raise ValueError(f"Unknown job {name!r}; known jobs: {known}") from None

    def names(self) -> list[str]:
        return sorted(self._jobs)

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def stages(self, name: str, thresholds: Thresholds | None = None) -> list[Stage]:
        """Instantiate the stage list of job ``name``."""
        return list(self.get(name).factory(thresholds or Thresholds()))

    def build(self, name: str, config: TxrollConfig | None = None) -> StagePipeline:
        """Build a ready-to-run pipeline for job ``name``."""
        cfg = config or TxrollConfig()
        thresholds = cfg.build_thresholds()
        stages = self.stages(name, thresholds)
        log.debug("Built job %s with stages %s", name, [s.name for s in stages])
        return StagePipeline(name, stages, config=cfg, thresholds=thresholds)


def default_job_registry() -> JobRegistry:
    """A fresh registry holding every built-in job."""
    from ..jobs import register_builtin_jobs

    registry = JobRegistry()
    register_builtin_jobs(registry)
    return registry


__all__ = ["JobFactory", "JobSpec", "JobRegistry", "default_job_registry"]
