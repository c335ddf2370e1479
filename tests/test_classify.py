from datetime import datetime, timezone

import pytest

from txroll.core.aggregate import ActivityProfile
from txroll.core.classify import (
    CLIENT_RISK_BANDS,
    NORMAL_BEHAVIOR,
    HealthGrade,
    Rule,
    Severity,
    bucket_by_score,
    classify_behavior,
    classify_client_risk,
    classify_merchant_health,
    classify_merchant_risk,
    classify_rfm,
    first_match,
    rfm_metrics,
)
from txroll.core.thresholds import Thresholds


def _epoch(day):
    return int(datetime(2010, 5, day, 12, tzinfo=timezone.utc).timestamp())


def _behavior_profile():
    return ActivityProfile(
        count=100,
        total_cents=100 * 500,
        max_cents=1000,
        error_count=6,
        online_count=70,
    )


def test_error_and_online_rates_together_make_high_behavior():
    thresholds = Thresholds({"behavior.error.high": 0.05, "behavior.online.med": 0.60})
    assert classify_behavior(_behavior_profile(), thresholds) is Severity.HIGH


def test_raising_the_error_cutoff_lowers_the_tier():
    thresholds = Thresholds({"behavior.error.high": 0.10})
    assert classify_behavior(_behavior_profile(), thresholds) is Severity.MEDIUM


def test_classification_is_repeatable():
    thresholds = Thresholds()
    profile = _behavior_profile()
    first = classify_behavior(profile, thresholds)
    assert all(classify_behavior(profile, thresholds) is first for _ in range(5))
    assert profile == _behavior_profile()


def test_quiet_client_is_low_behavior():
    profile = ActivityProfile(count=10, total_cents=1000, max_cents=200)
    assert classify_behavior(profile, Thresholds()) is Severity.LOW


def test_first_match_uses_rule_order():
    rules = (
        Rule("BIG", "big", lambda m, t: m["n"] >= t["big"]),
        Rule("SOME", "some", lambda m, t: m["n"] >= 1),
    )
    assert first_match(rules, {"n": 10}, {"big": 5}, "NONE") == "BIG"
    assert first_match(rules, {"n": 2}, {"big": 5}, "NONE") == "SOME"
    assert first_match(rules, {"n": 0}, {"big": 5}, "NONE") == "NONE"


def test_score_bands_are_inclusive_floors():
    t = Thresholds()
    assert bucket_by_score(86, CLIENT_RISK_BANDS, t, Severity.LOW) is Severity.CRITICAL
    assert bucket_by_score(85, CLIENT_RISK_BANDS, t, Severity.LOW) is Severity.HIGH
    assert bucket_by_score(61, CLIENT_RISK_BANDS, t, Severity.LOW) is Severity.HIGH
    assert bucket_by_score(31, CLIENT_RISK_BANDS, t, Severity.LOW) is Severity.MEDIUM
    assert bucket_by_score(30, CLIENT_RISK_BANDS, t, Severity.LOW) is Severity.LOW


def test_client_risk_adds_points_for_every_factor():
    profile = ActivityProfile(
        count=10,
        total_cents=1000,
        error_count=3,
        chargeback_count=4,
        cities={f"CITY{i}": 1 for i in range(6)},
        mccs={str(5000 + i): 1 for i in range(11)},
        cards={f"k{i}": 1 for i in range(4)},
    )

    severity, score = classify_client_risk(profile, Thresholds())

    assert score.points == 15 + 12 + 20 + 25 + 25 + 10
    assert severity is Severity.CRITICAL
    assert score.factors == (
        "HIGH_MOBILITY[6_cities]",
        "DIVERSE_MCC[11_categories]",
        "MULTIPLE_CARDS[4_cards]",
        "HIGH_ERROR_RATE[30.0%]",
        "FREQUENT_CHARGEBACKS[4]",
        "UNBALANCED_CHANNELS[0%_online]",
    )


def test_client_risk_ignores_online_pseudo_city():
    profile = ActivityProfile(
        count=4,
        total_cents=400,
        online_count=2,
        cities={"ONLINE": 2, "A": 1, "B": 1, "C": 1, "D": 1},
        mccs={"5411": 4},
        cards={"k1": 4},
    )
    severity, score = classify_client_risk(profile, Thresholds())
    assert score.factors == ("MEDIUM_MOBILITY[4_cities]",)
    assert score.points == 8
    assert severity is Severity.LOW


def test_clean_client_reports_normal_behavior():
    profile = ActivityProfile(count=10, total_cents=1000, online_count=5, cities={"NY": 10}, mccs={"5411": 10}, cards={"k": 10})
    severity, score = classify_client_risk(profile, Thresholds())
    assert severity is Severity.LOW
    assert score.points == 0
    assert score.factors == (NORMAL_BEHAVIOR,)


@pytest.mark.parametrize(
    "revenue, count, grade",
    [
        (2_000_000, 10, HealthGrade.A),
        (600_000, 10, HealthGrade.B),
        (100_000, 10, HealthGrade.C),
    ],
)
def test_merchant_health_grades_by_revenue(revenue, count, grade):
    profile = ActivityProfile(count=count, total_cents=revenue, max_cents=revenue)
    assert classify_merchant_health(profile, Thresholds()) is grade


def test_merchant_risk_escalates_on_any_signal():
    t = Thresholds()
    assert classify_merchant_risk(ActivityProfile(count=10, max_cents=500_000), t) is Severity.HIGH
    assert classify_merchant_risk(ActivityProfile(count=100, online_count=75, max_cents=100), t) is Severity.MEDIUM
    assert classify_merchant_risk(ActivityProfile(count=100, max_cents=100), t) is Severity.LOW


def test_rfm_recency_is_measured_from_reference_date():
    profile = ActivityProfile(count=1000, total_cents=1000, last_ts=_epoch(20))
    assert rfm_metrics(profile, Thresholds().get_date("rfm.reference.date"))["recency_days"] == 11
    assert classify_rfm(profile, Thresholds()) is Severity.HIGH

    stale = ActivityProfile(count=10, total_cents=100)
    assert rfm_metrics(stale, Thresholds().get_date("rfm.reference.date"))["recency_days"] is None
    assert classify_rfm(stale, Thresholds()) is Severity.LOW


def test_rfm_recency_never_negative():
    profile = ActivityProfile(count=1, total_cents=100, last_ts=_epoch(20))
    metrics = rfm_metrics(profile, datetime(2010, 5, 1).date())
    assert metrics["recency_days"] == 0


def test_severity_from_label():
    assert Severity.from_label(" medium ") is Severity.MEDIUM
    with pytest.raises(KeyError):
        Severity.from_label("SEVERE")
