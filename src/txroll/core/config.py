# config.py
# SPDX-License-Identifier: MIT
"""Configuration models and loaders for txroll runs.

A :class:`TxrollConfig` is purely declarative: numbers, strings, and paths
grouped into sections. It round-trips through JSON and loads from TOML,
with dataclass field types driving coercion of the loaded values.
"""
from __future__ import annotations

import json
try:  # pragma: no cover - depends on interpreter version
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Optional, Type, TypeVar, Union, get_args, get_origin, get_type_hints

from .concurrency import EXECUTOR_KINDS
from .log import DEFAULT_LOG_FORMAT, PACKAGE_LOGGER_NAME, configure_logging
from .thresholds import Thresholds

T = TypeVar("T")


@dataclass(slots=True)
class PipelineConfig:
    """
    Controls sharding and concurrency of each stage.

    shard_count: number of key partitions; results never depend on it.
    max_workers = 0 -> os.cpu_count(); 1 folds batches inline.
    submit_window = None -> max_workers * 4 batches in flight.
    batch_size: records buffered per shard before a batch is submitted.
    executor_kind in {"thread", "process", "auto"}; "auto" uses threads.
    fail_fast: stop the stage on the first worker error.
    max_corrupt_rate: fraction of undecodable intermediate lines a stage
      tolerates before failing; None disables the check.
    """

    shard_count: int = 4
    max_workers: int = 0
    submit_window: Optional[int] = None
    batch_size: int = 2048
    executor_kind: str = "thread"
    fail_fast: bool = True
    max_corrupt_rate: Optional[float] = 0.01


@dataclass(slots=True)
class SourceConfig:
    """CSV reading options.

    Attributes:
        delimiter (str): Field separator.
        encoding (str): Text encoding of the input files.
        has_header (bool): Skip a leading ``id,...`` header row.
    """

    delimiter: str = ","
    encoding: str = "utf-8"
    has_header: bool = True


@dataclass(slots=True)
class OutputConfig:
    """Where stage outputs go.

    Attributes:
        out_dir (Path | None): Root directory for per-stage JSONL files.
            None keeps intermediate results in memory only.
        compress (bool): Write ``.jsonl.gz`` instead of ``.jsonl``.
        keep_intermediate (bool): Keep non-final stage files after a
            successful run.
    """

    out_dir: Optional[Path] = None
    compress: bool = False
    keep_intermediate: bool = True


@dataclass(slots=True)
class LoggingConfig:
    """Package logger settings; set propagate/logger_name to integrate with a host app."""

    level: Union[int, str] = "INFO"
    propagate: bool = False
    fmt: Optional[str] = DEFAULT_LOG_FORMAT
    logger_name: str = PACKAGE_LOGGER_NAME

    def apply(self) -> None:
        configure_logging(
            level=self.level,
            propagate=self.propagate,
            fmt=self.fmt,
            logger_name=self.logger_name or PACKAGE_LOGGER_NAME,
        )


@dataclass(slots=True)
class TxrollConfig:
    """Declarative settings for one txroll run.

    ``thresholds`` holds only overrides; names are checked against the
    documented defaults by :meth:`validate`.
    """

    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    thresholds: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Check value ranges and normalize the executor kind.

        Raises:
            ValueError: On any out-of-range or unknown setting.
        """
        pc = self.pipeline
        if pc.shard_count < 1:
            raise ValueError(f"pipeline.shard_count must be >= 1; got {pc.shard_count!r}.")
        if pc.batch_size < 1:
            raise ValueError(f"pipeline.batch_size must be >= 1; got {pc.batch_size!r}.")
        if pc.max_workers < 0:
            raise ValueError(f"pipeline.max_workers must be >= 0; got {pc.max_workers!r}.")
        kind = (pc.executor_kind or "auto").strip().lower()
        if kind not in EXECUTOR_KINDS:
            raise ValueError(f"pipeline.executor_kind must be one of {list(EXECUTOR_KINDS)}; got {pc.executor_kind!r}.")
        pc.executor_kind = kind
        if pc.max_corrupt_rate is not None:
            try:
                rate = float(pc.max_corrupt_rate)
            except (TypeError, ValueError):
                raise ValueError("pipeline.max_corrupt_rate must be a float between 0.0 and 1.0 when set.") from None
            if not 0.0 <= rate <= 1.0:
                raise ValueError("pipeline.max_corrupt_rate must be between 0.0 and 1.0 when set.")
            pc.max_corrupt_rate = rate
        if not self.source.delimiter:
            raise ValueError("source.delimiter must not be empty.")
        self.build_thresholds()

    def build_thresholds(self) -> Thresholds:
        """Resolve the threshold overrides into a :class:`Thresholds` mapping."""
        return Thresholds(self.thresholds)

    def to_dict(self) -> dict[str, Any]:
        return _dataclass_to_dict(self)

    def to_json(self, path: Path | str, *, indent: int = 2) -> str:
        """Write the config as JSON and return the path written."""
        target = Path(path)
        target.write_text(json.dumps(self.to_dict(), indent=indent, sort_keys=True), encoding="utf-8")
        return str(target)

    @classmethod
    def from_dict(cls: Type[T], data: Mapping[str, Any]) -> T:
        return _dataclass_from_dict(cls, data)

    @classmethod
    def from_json(cls: Type[T], path: Path | str) -> T:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.from_dict(payload)  # type: ignore[attr-defined]

    @classmethod
    def from_toml(cls: Type[T], path: Path | str) -> T:
        """
        Load a config from TOML.

        Tables mirror the dataclass sections: [pipeline], [source],
        [output], [logging], and [thresholds] (quote dotted names, e.g.
        ``"top.k" = 5``).
        """
        data = tomllib.loads(Path(path).read_text(encoding="utf-8"))
        return cls.from_dict(data)  # type: ignore[attr-defined]


def load_config_from_path(path: str | Path) -> TxrollConfig:
    """Load a :class:`TxrollConfig` from a ``.toml`` or ``.json`` file.

    Raises:
        ValueError: For any other extension.
    """
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".toml":
        return TxrollConfig.from_toml(p)
    if suffix == ".json":
        return TxrollConfig.from_json(p)
    raise ValueError(f"Unsupported config extension {p.suffix!r}; expected .toml or .json.")


def _dataclass_to_dict(obj: Any) -> dict[str, Any]:
    """Serialize a dataclass tree, dropping None values."""
    out: dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if value is None:
            continue
        if is_dataclass(value):
            out[f.name] = _dataclass_to_dict(value)
        elif isinstance(value, Path):
            out[f.name] = str(value)
        elif isinstance(value, dict):
            out[f.name] = dict(value)
        else:
            out[f.name] = value
    return out


def _dataclass_from_dict(cls: Type[T], data: Mapping[str, Any] | None) -> T:
    """Build dataclass ``cls`` from a mapping, rejecting unknown keys."""
    if data is None:
        return cls()  # type: ignore[call-arg]
    if not isinstance(data, Mapping):
        raise TypeError(f"{cls.__name__} expects a mapping; got {type(data).__name__}.")
    names = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(k for k in data if k not in names)
    if unknown:
        raise ValueError(f"Unsupported options for {cls.__name__}: {', '.join(unknown)}")
    hints = get_type_hints(cls)
    kwargs = {name: _coerce_value(hints[name], value) for name, value in data.items()}
    return cls(**kwargs)  # type: ignore[call-arg]


def _coerce_value(expected: Any, value: Any) -> Any:
    base, _ = _strip_optional(expected)
    if value is None:
        return None
    if isinstance(base, type) and is_dataclass(base):
        return _dataclass_from_dict(base, value)
    if get_origin(base) is dict:
        return dict(value)
    if base is Path:
        return Path(value)
    if base is bool:
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if base in (int, float, str):
        return base(value)
    return value


def _strip_optional(typ: Any) -> tuple[Any, bool]:
    if get_origin(typ) is Union:
        args = [a for a in get_args(typ) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return typ, False


__all__ = [
    "PipelineConfig",
    "SourceConfig",
    "OutputConfig",
    "LoggingConfig",
    "TxrollConfig",
    "load_config_from_path",
]
