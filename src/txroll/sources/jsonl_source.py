# jsonl_source.py
# SPDX-License-Identifier: MIT

"""Source that replays persisted stage output line by line."""

from __future__ import annotations

import gzip
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from ..core.log import get_logger

log = get_logger(__name__)

__all__ = ["IntermediateJSONLSource"]


@dataclass
class IntermediateJSONLSource:
    """Yield the raw lines of one or more stage output files.

    Lines are not decoded here. The consuming stage decodes them so that
    undecodable lines are counted against its corruption limit. A line that
    is not valid text in ``encoding`` is yielded as its raw bytes, which the
    stage's decoder then rejects as corrupt.

    Every path must exist: a resumed stage that silently read nothing would
    publish an empty result as if it were complete.

    Attributes:
        paths (Sequence[Path]): ``.jsonl`` or ``.jsonl.gz`` files.
        encoding (str): Text encoding of the files.

    Raises:
        FileNotFoundError: While iterating, for the first missing file.
    """

    paths: Sequence[Path]
    encoding: str = "utf-8"

    def __iter__(self) -> Iterator[str | bytes]:
        return self.iter_lines()

    def iter_lines(self) -> Iterator[str | bytes]:
        for path in self.paths:
            path = Path(path)
            opener = _open_jsonl_gz if path.name.lower().endswith(".gz") else _open_jsonl
            try:
                fp = opener(path)
            except FileNotFoundError:
                log.error("JSONL file not found: %s", path)
                raise
            emitted = undecodable = 0
            with fp:
                for raw_line in fp:
                    line = raw_line.strip()
                    if not line:
                        continue
                    emitted += 1
                    try:
                        text = line.decode(self.encoding)
                    except UnicodeDecodeError:
                        undecodable += 1
                        yield line
                        continue
                    yield text
            log.debug("Finished %s: lines=%d undecodable=%d", path, emitted, undecodable)


def _open_jsonl(path: Path) -> BinaryIO:
    return open(path, "rb")


def _open_jsonl_gz(path: Path) -> BinaryIO:
    return gzip.open(path, "rb")
