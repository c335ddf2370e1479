# log.py
# SPDX-License-Identifier: MIT
"""Package logger setup for txroll.

The package logger gets a NullHandler at import time so library users see
nothing until they opt in via :func:`configure_logging`. Stage-scoped
adapters prefix messages with the job and stage they belong to, which keeps
interleaved output from parallel runs readable.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any, TextIO

__all__ = [
    "PACKAGE_LOGGER_NAME",
    "DEFAULT_LOG_FORMAT",
    "get_logger",
    "stage_logger",
    "configure_logging",
    "temp_level",
]

PACKAGE_LOGGER_NAME = "txroll"
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logging.getLogger(PACKAGE_LOGGER_NAME).addHandler(logging.NullHandler())


def _coerce_level(level: int | str) -> int:
    if isinstance(level, str):
        return getattr(logging, level.strip().upper(), logging.INFO)
    return int(level)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger under the txroll namespace.

    Args:
        name (str | None): Dotted logger name, usually ``__name__``.
            Defaults to the package logger.

    Returns:
        logging.Logger: The requested logger.
    """
    return logging.getLogger(name or PACKAGE_LOGGER_NAME)


class _StageAdapter(logging.LoggerAdapter):
    """Prefix messages with ``[job/stage]``."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = self.extra or {}
        return f"[{extra.get('job')}/{extra.get('stage')}] {msg}", kwargs


def stage_logger(logger: logging.Logger, job: str, stage: str) -> logging.LoggerAdapter:
    """Wrap ``logger`` so each message names the job and stage."""
    return _StageAdapter(logger, {"job": job, "stage": stage})


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    fmt: str | None = None,
    datefmt: str | None = None,
    propagate: bool | None = None,
    logger_name: str = PACKAGE_LOGGER_NAME,
) -> logging.Logger:
    """Attach a single stream handler to a txroll logger.

    Calling this repeatedly does not stack handlers; an existing stream
    handler whose stream was closed (common under pytest) is pointed at the
    new stream instead.

    Args:
        level (int | str): Level or level name. Defaults to INFO.
        stream (TextIO | None): Output stream. Defaults to ``sys.stderr``.
        fmt (str | None): Format string. Defaults to
            :data:`DEFAULT_LOG_FORMAT`.
        datefmt (str | None): Date format for the handler.
        propagate (bool | None): Whether records also reach ancestor
            loggers. None means True so root handlers (caplog) still work.
        logger_name (str): Logger to configure.

    Returns:
        logging.Logger: The configured logger.
    """
    logger = get_logger(logger_name or PACKAGE_LOGGER_NAME)
    logger.setLevel(_coerce_level(level))
    logger.propagate = True if propagate is None else bool(propagate)

    target = stream if stream is not None else sys.stderr
    existing = [h for h in logger.handlers if isinstance(h, logging.StreamHandler)]
    for handler in existing:
        if getattr(handler.stream, "closed", False):
            # setStream() would flush the closed stream first and raise.
            handler.stream = target
    if not existing:
        handler = logging.StreamHandler(target)
        handler.setFormatter(logging.Formatter(fmt=fmt or DEFAULT_LOG_FORMAT, datefmt=datefmt))
        logger.addHandler(handler)
    return logger


@contextmanager
def temp_level(level: int | str, name: str | None = None) -> Iterator[logging.Logger]:
    """Set a logger level for the duration of a ``with`` block.

    Args:
        level (int | str): Level or level name to apply.
        name (str | None): Logger name. Defaults to the package logger.

    Yields:
        logging.Logger: The logger with the temporary level applied.
    """
    logger = get_logger(name or PACKAGE_LOGGER_NAME)
    previous = logger.level
    logger.setLevel(_coerce_level(level))
    try:
        yield logger
    finally:
        logger.setLevel(previous)
