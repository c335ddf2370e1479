import gzip
import logging
from pathlib import Path

import pytest

from txroll.core.records import CSV_COLUMNS
from txroll.sources.csv_source import TransactionCSVSource

ROW = ["1", "2010-01-01 00:01:00", "c1", "k1", "$-77.00", "Swipe Transaction", "m1", "Beulah", "ND", "58523.0", "5499", ""]


def _csv_text(rows, delimiter=","):
    return "\n".join(delimiter.join(r) for r in rows) + "\n"


def test_header_row_is_skipped_and_blank_rows_dropped(tmp_path: Path):
    path = tmp_path / "tx.csv"
    path.write_text(_csv_text([list(CSV_COLUMNS), ROW]) + "\n" + _csv_text([ROW]), encoding="utf-8")

    rows = list(TransactionCSVSource([path]))

    assert rows == [ROW, ROW]


def test_quoted_fields_with_commas(tmp_path: Path):
    path = tmp_path / "tx.csv"
    path.write_text('2,2010-01-01 00:01:00,c1,k1,"$1,234.00",Chip Transaction,m1,Beulah,ND,0,5499,"Bad PIN,Bad CVV"\n', encoding="utf-8")

    (row,) = list(TransactionCSVSource([path]))

    assert row[4] == "$1,234.00"
    assert row[11] == "Bad PIN,Bad CVV"


def test_gzip_input_and_multiple_files(tmp_path: Path):
    plain = tmp_path / "a.csv"
    plain.write_text(_csv_text([ROW]), encoding="utf-8")
    packed = tmp_path / "b.csv.gz"
    with gzip.open(packed, "wt", encoding="utf-8") as fp:
        fp.write(_csv_text([list(CSV_COLUMNS), ROW, ROW]))

    assert len(list(TransactionCSVSource([plain, packed]))) == 3


def test_custom_delimiter_and_no_header(tmp_path: Path):
    path = tmp_path / "tx.csv"
    path.write_text(_csv_text([ROW, ROW], delimiter=";"), encoding="utf-8")

    rows = list(TransactionCSVSource([path], delimiter=";", has_header=False))

    assert rows == [ROW, ROW]


def test_header_like_row_kept_when_header_disabled(tmp_path: Path):
    path = tmp_path / "tx.csv"
    path.write_text(_csv_text([list(CSV_COLUMNS)]), encoding="utf-8")
    assert list(TransactionCSVSource([path], has_header=False)) == [list(CSV_COLUMNS)]


def test_missing_file_is_logged_and_skipped(tmp_path: Path, caplog):
    path = tmp_path / "present.csv"
    path.write_text(_csv_text([ROW]), encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="txroll"):
        rows = list(TransactionCSVSource([tmp_path / "missing.csv", path]))

    assert rows == [ROW]
    assert any("CSV file not found" in r.getMessage() for r in caplog.records)


def test_no_existing_input_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError, match="No input CSV file exists"):
        list(TransactionCSVSource([tmp_path / "a.csv", tmp_path / "b.csv"]))
