# sinks.py
# SPDX-License-Identifier: MIT
"""Sinks for writing encoded stage results to JSONL files."""
from __future__ import annotations

import gzip
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Self, TextIO

from ..core.codec import StageResult, encode_result


class _BaseJSONLSink:
    """Shared JSONL sink logic.

    Lines go to ``<name>.tmp`` first and the temp file is moved into place
    on :meth:`close`, so a reader never sees a half-written stage output.
    """

    def __init__(self, out_path: str | os.PathLike[str]):
        """Configure a JSONL sink.

        Args:
            out_path (str | os.PathLike[str]): Destination file path.
        """
        self._path = Path(out_path)
        self._fp: TextIO | None = None
        self._tmp_path: Path | None = None
        self.lines_written = 0

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        """Create a temp file for writing."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._tmp_path = self._path.parent / f"{self._path.name}.tmp"
        self._fp = self._open_handle(self._tmp_path)
        self.lines_written = 0

    def write_line(self, line: str) -> None:
        """Write one already-encoded JSON line."""
        assert self._fp is not None
        self._fp.write(line + "\n")
        self.lines_written += 1

    def write(self, result: StageResult) -> None:
        """Encode and write a single stage result."""
        self.write_line(encode_result(result))

    def write_all(self, results: Iterable[StageResult]) -> None:
        for result in results:
            self.write(result)

    def close(self) -> None:
        """Close any open handle and move the temp file into place."""
        if not self._fp:
            return
        try:
            self._fp.close()
        finally:
            self._fp = None
        if self._tmp_path:
            os.replace(self._tmp_path, self._path)
            self._tmp_path = None

    def abort(self) -> None:
        """Close the handle and discard the temp file without publishing it."""
        if self._fp is not None:
            try:
                self._fp.close()
            finally:
                self._fp = None
        if self._tmp_path is not None:
            self._tmp_path.unlink(missing_ok=True)
            self._tmp_path = None

    def __enter__(self) -> Self:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.close()

    def _open_handle(self, path: Path):
        """Return a write handle for a fresh file path."""
        raise NotImplementedError


class JSONLSink(_BaseJSONLSink):
    """Plain JSONL stage output (one result per line)."""

    def _open_handle(self, path: Path):
        return open(path, "w", encoding="utf-8", newline="")


class GzipJSONLSink(_BaseJSONLSink):
    """JSONL stage output, gzip-compressed."""

    def _open_handle(self, path: Path):
        return gzip.open(path, "wt", encoding="utf-8", newline="")


def make_jsonl_sink(out_path: str | os.PathLike[str], *, compress: bool = False) -> _BaseJSONLSink:
    """Pick the plain or gzip sink; ``compress`` also appends ``.gz``."""
    path = Path(out_path)
    if compress:
        if path.suffix != ".gz":
            path = path.with_name(path.name + ".gz")
        return GzipJSONLSink(path)
    return JSONLSink(path)


__all__ = ["JSONLSink", "GzipJSONLSink", "make_jsonl_sink"]
