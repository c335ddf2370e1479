import csv
import json
from pathlib import Path

from txroll.cli.main import main
from txroll.core.codec import decode_result
from txroll.core.config import TxrollConfig
from txroll.core.records import CSV_COLUMNS

ROWS = [
    ["1", "2010-01-01 09:00:00", "c1", "k1", "$10.00", "Chip Transaction", "m1", "New York", "NY", "10001", "5411", ""],
    ["2", "2010-01-01 13:00:00", "c2", "k2", "$5.00", "Online Transaction", "m2", "Los Angeles", "CA", "", "5812", ""],
    ["3", "2010-01-01 20:00:00", "c1", "k1", "$20.00", "Chip Transaction", "m1", "New York", "NY", "10001", "5812", ""],
]


def _write_csv(tmp_path: Path, rows=ROWS) -> Path:
    path = tmp_path / "tx.csv"
    with path.open("w", encoding="utf-8", newline="") as fp:
        writer = csv.writer(fp)
        writer.writerow(CSV_COLUMNS)
        writer.writerows(rows)
    return path


def test_cli_run_prints_jsonl_results(tmp_path: Path, capsys):
    csv_path = _write_csv(tmp_path)

    rc = main(["run", "amount-by-city", str(csv_path), "--workers", "1"])

    assert rc == 0
    lines = capsys.readouterr().out.splitlines()
    results = [decode_result(line) for line in lines]
    assert [r.key for r in results] == ["LOS ANGELES", "NEW YORK"]
    assert results[1].payload.total_cents == 3000


def test_cli_run_text_format_and_threshold_override(tmp_path: Path, capsys):
    csv_path = _write_csv(tmp_path)

    rc = main(["run", "top-categories-by-city", str(csv_path), "--workers", "1", "--format", "text", "-D", "top.k=1"])

    assert rc == 0
    out = capsys.readouterr().out.splitlines()
    assert out == [
        "LOS ANGELES\ttopk\tk=1 entries=['5812', 1]",
        "NEW YORK\ttopk\tk=1 entries=['5411', 1]",
    ]


def test_cli_run_writes_outputs_and_report(tmp_path: Path, capsys):
    csv_path = _write_csv(tmp_path)
    out_dir = tmp_path / "runs"
    report_path = tmp_path / "report.json"

    rc = main(
        [
            "run",
            "category-by-period",
            str(csv_path),
            "--workers",
            "2",
            "--shards",
            "3",
            "--out-dir",
            str(out_dir),
            "--report",
            str(report_path),
        ]
    )

    assert rc == 0
    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["state"] == "COMPLETED"
    assert [s["stage"] for s in report["stages"]] == ["city_period_counts", "city_period_ranking"]
    assert (out_dir / "category-by-period" / "02_city_period_ranking.jsonl").exists()
    capsys.readouterr()

    rc = main(
        [
            "run",
            "category-by-period",
            str(out_dir / "category-by-period" / "01_city_period_counts.jsonl"),
            "--workers",
            "1",
            "--start",
            "1",
        ]
    )
    assert rc == 0
    assert len(capsys.readouterr().out.splitlines()) == report["results"]


def test_cli_run_with_config_file(tmp_path: Path, capsys):
    csv_path = tmp_path / "tx.csv"
    with csv_path.open("w", encoding="utf-8", newline="") as fp:
        csv.writer(fp, delimiter=";").writerows(ROWS)
    cfg = TxrollConfig()
    cfg.source.delimiter = ";"
    cfg.source.has_header = False
    cfg.pipeline.max_workers = 1
    config_path = tmp_path / "cfg.json"
    cfg.to_json(config_path)

    rc = main(["run", "chip-usage", str(csv_path), "-c", str(config_path)])

    assert rc == 0
    keys = [decode_result(line).key for line in capsys.readouterr().out.splitlines()]
    assert keys == ["Chip Transaction", "Online Transaction"]


def test_cli_run_failure_prints_report(tmp_path: Path, capsys):
    big = "$92233720368547758.07"
    rows = [r[:4] + [big] + r[5:] for r in ROWS]
    csv_path = _write_csv(tmp_path, rows)
    report_path = tmp_path / "report.json"

    rc = main(["run", "amount-by-client", str(csv_path), "--workers", "1", "--report", str(report_path)])

    assert rc == 1
    err = capsys.readouterr().err
    assert "Error:" in err
    assert "AggregationOverflow" in err
    assert json.loads(report_path.read_text(encoding="utf-8"))["state"] == "FAILED"


def test_cli_unknown_job_fails(tmp_path: Path, capsys):
    rc = main(["run", "no-such-job", str(_write_csv(tmp_path))])
    assert rc == 1
    assert "Unknown job" in capsys.readouterr().err


def test_cli_invalid_threshold_fails(tmp_path: Path, capsys):
    rc = main(["run", "amount-by-city", str(_write_csv(tmp_path)), "-D", "top.k=lots"])
    assert rc == 1
    assert "top.k" in capsys.readouterr().err


def test_cli_lists_jobs_and_thresholds(capsys):
    assert main(["jobs"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 15
    assert any(line.startswith("client-risk\t") and "client_scores" in line for line in lines)

    assert main(["thresholds"]) == 0
    thresholds = json.loads(capsys.readouterr().out)
    assert thresholds["top.k"] == 3


def test_cli_merge_stats(tmp_path: Path, capsys):
    csv_path = _write_csv(tmp_path)
    reports = []
    for i in range(2):
        report_path = tmp_path / f"report{i}.json"
        assert main(["run", "amount-by-city", str(csv_path), "--workers", "1", "--report", str(report_path)]) == 0
        reports.append(report_path)
    capsys.readouterr()

    merged_path = tmp_path / "merged.json"
    rc = main(["merge-stats", str(reports[0]), str(reports[1]), "-o", str(merged_path)])

    assert rc == 0
    merged = json.loads(merged_path.read_text(encoding="utf-8"))
    assert merged["runs"] == 2
    assert merged["stages"][0]["records"] == 6


def test_cli_resume_from_missing_stage_file_fails(tmp_path: Path, capsys):
    report_path = tmp_path / "report.json"

    rc = main(
        [
            "run",
            "category-by-period",
            str(tmp_path / "01_city_period_counts.jsonl"),
            "--workers",
            "1",
            "--start",
            "1",
            "--report",
            str(report_path),
        ]
    )

    assert rc == 1
    assert "Error:" in capsys.readouterr().err
    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["state"] == "FAILED"
    assert report["failed_stage"] == "city_period_ranking"
    assert report["stages"][0]["records"] == 0
