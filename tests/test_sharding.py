import zlib

import pytest

from txroll.core.keys import CompositeKey
from txroll.core.sharding import partition_counts, shard_for_key, shard_label


def test_shard_for_key_is_stable_crc32():
    assert shard_for_key("NEW YORK", 8) == zlib.crc32(b"NEW YORK") % 8
    assert shard_for_key("NEW YORK", 8) == shard_for_key("NEW YORK", 8)
    assert shard_for_key("anything", 1) == 0


def test_composite_keys_hash_both_dimensions():
    key = CompositeKey.ranked("NY", "MORNING")
    assert shard_for_key(key, 16) == zlib.crc32("NY\x1fMORNING".encode("utf-8")) % 16


def test_shard_for_key_requires_positive_count():
    with pytest.raises(ValueError):
        shard_for_key("NY", 0)


def test_partition_counts_cover_all_keys():
    keys = [f"K{i}" for i in range(100)]
    counts = partition_counts(keys, 5)
    assert len(counts) == 5
    assert sum(counts) == 100
    assert shard_label(12) == "0012"
