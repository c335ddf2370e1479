# sharding.py
# SPDX-License-Identifier: MIT
"""
Stable key partitioning for shard-parallel stages.

Python's built-in ``hash()`` of a string is salted per process, which would
send the same key to different shards in different worker processes or
reruns. Partitioning here hashes the key's canonical text with CRC-32
instead, so a key's shard depends only on the key and the shard count.
"""

from __future__ import annotations

import zlib
from collections.abc import Iterable

from .keys import Key, key_token


def shard_for_key(key: Key, shard_count: int) -> int:
    """Return the shard index in ``[0, shard_count)`` for ``key``."""
    if shard_count < 1:
        raise ValueError("shard_count must be at least 1")
    if shard_count == 1:
        return 0
    return zlib.crc32(key_token(key).encode("utf-8")) % shard_count


def shard_label(index: int) -> str:
    """Zero-padded shard name used in logs and stats, e.g. ``0003``."""
    return f"{index:04d}"


def partition_counts(keys: Iterable[Key], shard_count: int) -> list[int]:
    """How many of ``keys`` land on each shard; handy for skew diagnostics."""
    counts = [0] * shard_count
    for key in keys:
        counts[shard_for_key(key, shard_count)] += 1
    return counts


__all__ = ["shard_for_key", "shard_label", "partition_counts"]
