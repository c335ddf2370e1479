import random

import pytest

from txroll.core.aggregate import (
    INT64_MAX,
    INT64_MIN,
    ActivityProfile,
    AggregationOverflow,
    AmountStats,
    CategoryCounts,
    PartialAggregator,
    SegmentSummary,
    checked_add,
    truncating_average,
)
from txroll.core.records import parse_transaction
from txroll.core.topk import TopKEntry, TopKSet

CITIES = ["NEW YORK", "LOS ANGELES", "ROME", "BEULAH"]
MCCS = ["5411", "5812", "4111", ""]


def _transactions(n, seed=7):
    rng = random.Random(seed)
    out = []
    for i in range(n):
        cents = rng.randint(-5000, 90000)
        sign = "-" if cents < 0 else ""
        row = [
            str(i),
            f"2010-0{rng.randint(1, 9)}-1{rng.randint(0, 9)} {rng.randint(0, 23):02d}:00:00",
            f"c{rng.randint(1, 5)}",
            f"k{rng.randint(1, 8)}",
            f"${sign}{abs(cents) // 100}.{abs(cents) % 100:02d}",
            rng.choice(["Chip Transaction", "Swipe Transaction", "Online Transaction"]),
            f"m{rng.randint(1, 4)}",
            rng.choice(CITIES),
            rng.choice(["NY", "CA", "ITALY"]),
            "00000",
            rng.choice(MCCS),
            rng.choice(["", "", "", "Bad PIN"]),
        ]
        out.append(parse_transaction(row))
    return out


def _random_split(items, rng):
    shards = [[] for _ in range(rng.randint(1, 6))]
    for item in items:
        rng.choice(shards).append(item)
    return shards


AGGREGATORS = [
    PartialAggregator(AmountStats.identity, AmountStats.of_transaction),
    PartialAggregator(CategoryCounts.identity, CategoryCounts.of_mcc),
    PartialAggregator(CategoryCounts.identity, CategoryCounts.of_period),
    PartialAggregator(ActivityProfile.identity, ActivityProfile.of_transaction),
]


@pytest.mark.parametrize("aggregator", AGGREGATORS)
def test_any_shard_split_merges_to_the_sequential_fold(aggregator):
    txs = _transactions(200)
    expected = aggregator.fold(txs).to_dict()
    rng = random.Random(42)
    for _ in range(10):
        parts = [aggregator.fold(shard) for shard in _random_split(txs, rng)]
        rng.shuffle(parts)
        merged = aggregator.init()
        for part in parts:
            merged = aggregator.merge(merged, part)
        assert merged.to_dict() == expected


def test_identity_is_neutral_and_merged_is_pure():
    stats = AmountStats.of(250)
    identity = AmountStats.identity()

    assert identity.merged(stats) == stats
    assert stats.merged(identity) == stats

    other = AmountStats.of(-50)
    combined = stats.merged(other)
    assert combined == AmountStats(count=2, total_cents=200, max_cents=250, min_cents=-50)
    assert stats == AmountStats.of(250)


def test_amount_stats_average_truncates_toward_zero():
    assert truncating_average(7, 2) == 3
    assert truncating_average(-7, 2) == -3
    assert truncating_average(5, 0) == 0
    assert AmountStats(count=3, total_cents=1000).average_cents == 333


def test_checked_add_refuses_to_leave_int64():
    assert checked_add(INT64_MAX - 1, 1) == INT64_MAX
    with pytest.raises(AggregationOverflow):
        checked_add(INT64_MAX, 1)
    with pytest.raises(AggregationOverflow):
        checked_add(INT64_MIN, -1)


def test_fold_overflow_surfaces_as_error():
    row = ["1", "2010-01-01 00:00:00", "c1", "k1", "$92233720368547758.07", "Chip", "m1", "NY", "NY", "0", "5411", ""]
    tx = parse_transaction(row)
    assert tx.amount_cents == INT64_MAX
    aggregator = PartialAggregator(AmountStats.identity, AmountStats.of_transaction)
    with pytest.raises(AggregationOverflow):
        aggregator.fold([tx, tx])


def test_category_counts_union_sum():
    left = CategoryCounts({"5411": 2, "5812": 1})
    right = CategoryCounts({"5812": 3, "4111": 1})
    assert left.merged(right).counts == {"5411": 2, "5812": 4, "4111": 1}
    assert left.merged(right).record_count == 7


def test_activity_profile_tracks_extremes_and_maps():
    txs = _transactions(50, seed=3)
    profile = PartialAggregator(ActivityProfile.identity, ActivityProfile.of_transaction).fold(txs)

    assert profile.count == 50
    assert profile.total_cents == sum(t.amount_cents for t in txs)
    assert profile.max_cents == max(t.amount_cents for t in txs)
    assert profile.first_ts == min(t.epoch_seconds for t in txs)
    assert profile.last_ts == max(t.epoch_seconds for t in txs)
    assert sum(profile.cities.values()) == 50
    assert profile.error_count == sum(t.has_error for t in txs)
    assert ActivityProfile.from_dict(profile.to_dict()) == profile


def test_activity_profile_copy_does_not_share_maps():
    profile = ActivityProfile(count=1, cities={"NY": 1})
    clone = profile.copy()
    clone.cities["LA"] = 1
    assert profile.cities == {"NY": 1}


def test_segment_summary_merges_tallies_and_top():
    left = SegmentSummary(
        members=1,
        score_total=10,
        tallies={"risk": {"HIGH": 1}},
        top=TopKSet.of(2, [TopKEntry("a", 10)]),
    )
    right = SegmentSummary(
        members=2,
        score_total=30,
        tallies={"risk": {"HIGH": 1, "LOW": 1}, "grade": {"A": 2}},
        top=TopKSet.of(2, [TopKEntry("b", 20), TopKEntry("c", 5)]),
    )

    merged = left.merged(right)

    assert merged.members == 3
    assert merged.score_total == 40
    assert merged.tallies == {"risk": {"HIGH": 2, "LOW": 1}, "grade": {"A": 2}}
    assert merged.top.identifiers() == ["b", "a"]
    assert left.tallies == {"risk": {"HIGH": 1}}
    assert SegmentSummary.from_dict(merged.to_dict()) == merged


def test_from_dict_rejects_float_money():
    with pytest.raises(TypeError):
        AmountStats.from_dict({"count": 1, "total_cents": 1.5})
    with pytest.raises(TypeError):
        CategoryCounts.from_dict({"counts": {"5411": True}})
