import csv
from pathlib import Path

import pytest

from txroll.cli.runner import run_job
from txroll.core.config import TxrollConfig
from txroll.core.records import CSV_COLUMNS
from txroll.core.registries import default_job_registry
from txroll.jobs import BUILTIN_JOBS
from txroll.jobs.basic import peak_period
from txroll.jobs.common import basis_points, by_severity_desc
from txroll.jobs.mcc import describe_mcc, general_category

ROWS = [
    # id, date, client, card, amount, use_chip, merchant, city, state, zip, mcc, errors
    ["1", "2010-01-01 09:00:00", "c1", "k1", "$10.00", "Chip Transaction", "m1", "New York", "NY", "10001", "5411", ""],
    ["2", "2010-01-02 13:00:00", "c1", "k1", "$20.00", "Swipe Transaction", "m1", "New York", "NY", "10001", "5411", ""],
    ["3", "2010-01-03 20:00:00", "c2", "k2", "$5.00", "Online Transaction", "m2", "Los Angeles", "CA", "", "5812", "Bad PIN"],
    ["4", "2010-01-04 10:00:00", "c2", "k2", "$7.50", "Chip Transaction", "m3", "Rome", "Italy", "", "4111", ""],
    ["5", "2010-01-05 19:00:00", "c3", "k3", "$-3.00", "Chip Transaction", "m1", "New York", "NY", "10001", "5812", ""],
    ["6", "2010-01-05 08:00:00", "c1", "k1", "$1.00", "Chip Transaction", "m4", "Brooklyn", "NY", "11201", "", ""],
]


def _write_csv(tmp_path: Path) -> Path:
    path = tmp_path / "transactions.csv"
    with path.open("w", encoding="utf-8", newline="") as fp:
        writer = csv.writer(fp)
        writer.writerow(CSV_COLUMNS)
        writer.writerows(ROWS)
    return path


def _config(thresholds=None, **pipeline):
    cfg = TxrollConfig()
    cfg.pipeline.max_workers = 1
    cfg.pipeline.shard_count = 2
    for name, value in pipeline.items():
        setattr(cfg.pipeline, name, value)
    cfg.thresholds = dict(thresholds or {})
    return cfg


def _run(tmp_path, job, thresholds=None, **pipeline):
    return run_job(job, [_write_csv(tmp_path)], config=_config(thresholds, **pipeline))


def _by_key(report):
    return {str(r.key): r.payload for r in report.results}


def test_amount_by_city(tmp_path: Path):
    report = _run(tmp_path, "amount-by-city")

    assert [r.key for r in report.results] == ["BROOKLYN", "LOS ANGELES", "NEW YORK", "ROME"]
    ny = _by_key(report)["NEW YORK"]
    assert (ny.count, ny.total_cents, ny.max_cents, ny.min_cents) == (3, 2700, 2000, -300)
    assert report.stages[0].records == 6


def test_amount_by_client_and_state(tmp_path: Path):
    clients = _by_key(_run(tmp_path, "amount-by-client"))
    assert {k: (v.count, v.total_cents) for k, v in clients.items()} == {
        "c1": (3, 3100),
        "c2": (2, 1250),
        "c3": (1, -300),
    }
    states = _by_key(_run(tmp_path, "tx-count-by-state"))
    assert {k: v.count for k, v in states.items()} == {"CA": 1, "ITALY": 1, "NY": 4}


def test_chip_usage(tmp_path: Path):
    channels = _by_key(_run(tmp_path, "chip-usage"))
    assert {k: v.count for k, v in channels.items()} == {
        "Chip Transaction": 4,
        "Online Transaction": 1,
        "Swipe Transaction": 1,
    }


def test_errors_by_mcc(tmp_path: Path):
    report = _run(tmp_path, "errors-by-mcc")

    assert len(report.results) == 1
    verdict = report.results[0].payload
    assert verdict.entity == "5812"
    assert verdict.category == general_category("5812")
    assert verdict.metrics == {"errors": 1, "total_cents": 500}
    assert verdict.labels["description"] == describe_mcc("5812")
    assert report.stages[0].rejected_by_reason == {"no_error": 4, "invalid_mcc": 1}


def test_top_categories_by_city_drops_invalid_mcc(tmp_path: Path):
    report = _run(tmp_path, "top-categories-by-city")

    tops = _by_key(report)
    assert "BROOKLYN" not in tops
    assert [(e.identifier, e.value) for e in tops["NEW YORK"]] == [("5411", 2), ("5812", 1)]
    assert report.stages[0].rejected_by_reason == {"invalid_mcc": 1}


def test_top_categories_by_country_only_foreign(tmp_path: Path):
    report = _run(tmp_path, "top-categories-by-country")

    assert list(_by_key(report)) == ["ITALY"]
    assert report.stages[0].rejected_by_reason == {"domestic": 4, "invalid_mcc": 1}


def test_top_categories_respects_k_override(tmp_path: Path):
    tops = _by_key(_run(tmp_path, "top-categories-by-state", {"top.k": 1}))
    assert tops["NY"].identifiers() == ["5411"]


def test_city_time_period(tmp_path: Path):
    verdicts = _by_key(_run(tmp_path, "city-time-period"))

    ny = verdicts["NEW YORK"]
    assert ny.category == "MORNING"
    assert ny.metrics["MORNING"] == 1
    assert ny.metrics["AFTERNOON"] == 1
    assert ny.metrics["NIGHT"] == 1
    assert ny.metrics["MORNING_bp"] == 3333
    assert verdicts["LOS ANGELES"].category == "NIGHT"


def test_category_by_period_keys(tmp_path: Path):
    report = _run(tmp_path, "category-by-period")
    assert [str(r.key) for r in report.results] == [
        "LOS ANGELES|NIGHT",
        "NEW YORK|MORNING",
        "NEW YORK|AFTERNOON",
        "NEW YORK|NIGHT",
        "ROME|MORNING",
    ]


def test_city_summary(tmp_path: Path):
    report = _run(tmp_path, "city-summary", {"city.min_transactions": 1})

    assert [r.key for r in report.results] == ["ALL"]
    verdict = report.results[0].payload
    assert verdict.labels == {
        "busiest_city": "NEW YORK",
        "highest_avg_city": "NEW YORK",
        "lowest_avg_city": "BROOKLYN",
    }
    assert verdict.metrics["cities"] == 4
    assert verdict.metrics["transactions"] == 6
    assert verdict.metrics["highest_avg_cents"] == 900
    assert verdict.metrics["lowest_avg_cents"] == 100


def test_city_summary_with_no_eligible_cities(tmp_path: Path):
    verdict = _run(tmp_path, "city-summary").results[0].payload
    assert verdict.metrics["eligible_cities"] == 0
    assert "highest_avg_city" not in verdict.labels
    assert verdict.labels["busiest_city"] == "NEW YORK"


def test_client_risk_segments(tmp_path: Path):
    report = _run(tmp_path, "client-risk", {"risk.score.medium": 20})

    assert [r.key for r in report.results] == ["MEDIUM", "LOW"]
    medium, low = (r.payload for r in report.results)
    assert medium.members == 2
    assert medium.score_total == 45
    assert medium.top.identifiers() == ["c2", "c3"]
    assert medium.tally("factors") == {"HIGH_ERROR_RATE": 1, "CHARGEBACKS": 1, "UNBALANCED_CHANNELS": 1}
    assert low.members == 1
    assert low.top.identifiers() == ["c1"]
    assert [s.stage for s in report.stages] == ["client_profiles", "client_scores", "risk_segments"]


def test_merchant_health_by_state(tmp_path: Path):
    report = _run(tmp_path, "merchant-health", {"min.state.merchants": 1})

    states = _by_key(report)
    assert list(states) == ["CA", "ITALY", "NY"]
    assert states["NY"].members == 2
    assert states["NY"].tally("health") == {"C": 2}
    assert states["NY"].top.identifiers() == ["M1", "M4"]
    assert states["CA"].tally("risk") == {"HIGH": 1}
    assert states["CA"].tally("hotspots") == {"LOS ANGELES": 1}


def test_merchant_health_drops_small_states(tmp_path: Path):
    report = _run(tmp_path, "merchant-health")
    assert report.results == []
    assert report.ok


def test_rfm_by_state(tmp_path: Path):
    thresholds = {"rfm.reference.date": "2010-01-10", "rfm.monetary.high_cents": 1000}
    states = _by_key(_run(tmp_path, "rfm-by-state", thresholds))

    assert states["NY"].tally("tier") == {"HIGH": 1, "MEDIUM": 1}
    assert states["NY"].top.identifiers() == ["NEW YORK"]
    assert states["CA"].tally("tier") == {"MEDIUM": 1}


def test_client_behavior(tmp_path: Path):
    states = _by_key(_run(tmp_path, "client-behavior"))
    assert states["CA"].tally("tier") == {"MEDIUM": 1}
    assert states["NY"].tally("tier") == {"LOW": 2}
    assert len(states["NY"].top) == 0


@pytest.mark.parametrize("job", ["client-risk", "city-summary", "merchant-health"])
def test_process_pool_matches_serial(tmp_path: Path, job):
    thresholds = {"city.min_transactions": 1, "min.state.merchants": 1}
    serial = _run(tmp_path, job, thresholds)
    pooled = _run(tmp_path, job, thresholds, executor_kind="process", max_workers=2, batch_size=1)
    assert pooled.results == serial.results


def test_every_builtin_job_runs(tmp_path: Path):
    registry = default_job_registry()
    assert registry.names() == sorted(name for name, _, _ in BUILTIN_JOBS)
    for name in registry.names():
        report = _run(tmp_path, name)
        assert report.ok, name
        for stats in report.stages:
            assert stats.records == stats.accepted + stats.rejected + stats.corrupt


def test_helpers():
    assert basis_points(1, 3) == 3333
    assert basis_points(5, 0) == 0
    assert peak_period({"NIGHT": 2, "MORNING": 2}).name == "MORNING"
    assert peak_period({}) is None
    assert general_category("9402") == "Government"
    assert describe_mcc("0000") == "Unknown MCC 0000"


def test_severity_order_helper():
    class _R:
        def __init__(self, key):
            self.key = key

    keys = ["LOW", "CRITICAL", "OTHER", "MEDIUM"]
    assert [k for k in sorted(keys, key=lambda k: by_severity_desc(_R(k)))] == ["CRITICAL", "MEDIUM", "LOW", "OTHER"]
