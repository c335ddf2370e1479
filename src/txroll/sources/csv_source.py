# csv_source.py
# SPDX-License-Identifier: MIT

"""CSV source that streams raw transaction rows as field lists."""

from __future__ import annotations

import csv
import gzip
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from ..core.log import get_logger

__all__ = ["TransactionCSVSource"]

log = get_logger(__name__)


@dataclass
class TransactionCSVSource:
    """Stream transaction rows from CSV files.

    Rows are yielded untouched as lists of strings; parsing and validation
    happen in the first pipeline stage so rejections are counted there.

    Attributes:
        paths (Sequence[Path]): ``.csv`` or ``.csv.gz`` files, read in order.
        delimiter (str): Field separator.
        encoding (str): Encoding used to read files.
        has_header (bool): Skip a leading row whose first field is ``id``.
    """

    paths: Sequence[Path]
    delimiter: str = ","
    encoding: str = "utf-8"
    has_header: bool = True

    def __iter__(self) -> Iterator[list[str]]:
        return self.iter_rows()

    def iter_rows(self) -> Iterator[list[str]]:
        """Yield every data row of every configured file.

        Missing files are logged and skipped; other read errors propagate
        so a truncated input never passes as a complete one.

        Raises:
            FileNotFoundError: If none of the configured files exist.
        """
        missing: list[Path] = []
        for path in self.paths:
            path = Path(path)
            opener = _open_csv_gz if path.name.lower().endswith(".gz") else _open_csv
            try:
                fp = opener(path, encoding=self.encoding)
            except FileNotFoundError:
                log.warning("CSV file not found: %s", path)
                missing.append(path)
                continue
            rows = 0
            with fp:
                reader = csv.reader(fp, delimiter=self.delimiter)
                for lineno, row in enumerate(reader, start=1):
                    if lineno == 1 and self.has_header and _is_header(row):
                        continue
                    if not row:
                        continue
                    rows += 1
                    yield row
            log.debug("Finished %s: rows=%d", path, rows)
        if missing and len(missing) == len(self.paths):
            raise FileNotFoundError(f"No input CSV file exists: {', '.join(str(p) for p in missing)}")


def _is_header(row: Sequence[str]) -> bool:
    return bool(row) and row[0].strip().strip('"').lower() == "id"


def _open_csv(path: Path, *, encoding: str) -> TextIO:
    return open(path, encoding=encoding, newline="")


def _open_csv_gz(path: Path, *, encoding: str) -> TextIO:
    return gzip.open(path, "rt", encoding=encoding, newline="")
