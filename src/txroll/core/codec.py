# codec.py
# SPDX-License-Identifier: MIT
"""Typed stage results and their line-oriented JSON encoding.

A :class:`StageResult` is what one stage hands to the next: a key plus a
payload that is either a partial aggregate, a :class:`Verdict`, or a
:class:`~txroll.core.topk.TopKSet`. Each result encodes to one compact JSON
object per line. Integers stay integers (cents never pass through a float)
and decoding validates every field, raising :class:`IntermediateCorrupt`
instead of guessing.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

from .aggregate import AGGREGATE_TYPES, _count_map, _req_int
from .keys import CompositeKey, Key
from .topk import TopKSet

__all__ = [
    "SCHEMA_VERSION",
    "IntermediateCorrupt",
    "Verdict",
    "StageResult",
    "PAYLOAD_TYPES",
    "result_to_dict",
    "result_from_dict",
    "encode_result",
    "decode_result",
    "ResultDecoder",
]

SCHEMA_VERSION = 1


class IntermediateCorrupt(ValueError):
    """Raised when a line of intermediate output cannot be decoded."""


@dataclass(frozen=True, slots=True)
class Verdict:
    """Classification outcome for one entity.

    Attributes:
        entity (str): What was classified (client id, merchant id, city).
        category (str): Label of the assigned category, e.g. ``HIGH``.
        score (int): Points behind the category for scored rules.
        factors (tuple[str, ...]): Human-readable reasons.
        metrics (dict[str, int]): Integer facts carried downstream.
        labels (dict[str, str]): Text facts carried downstream, such as
            the entity's predominant city.
        grade (str | None): Secondary category, e.g. a health grade.
    """

    kind: ClassVar[str] = "verdict"

    entity: str
    category: str
    score: int = 0
    factors: tuple[str, ...] = ()
    metrics: dict[str, int] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    grade: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "category": self.category,
            "score": self.score,
            "factors": list(self.factors),
            "metrics": dict(sorted(self.metrics.items())),
            "labels": dict(sorted(self.labels.items())),
            "grade": self.grade,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Verdict:
        labels = data.get("labels") or {}
        if not isinstance(labels, Mapping) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in labels.items()
        ):
            raise TypeError("labels must map str -> str")
        factors = data.get("factors") or []
        if not isinstance(factors, list) or not all(isinstance(f, str) for f in factors):
            raise TypeError("factors must be a list of strings")
        entity, category, grade = data["entity"], data["category"], data.get("grade")
        if not isinstance(entity, str) or not isinstance(category, str):
            raise TypeError("entity and category must be strings")
        if grade is not None and not isinstance(grade, str):
            raise TypeError("grade must be a string")
        return cls(
            entity=entity,
            category=category,
            score=_req_int(data, "score"),
            factors=tuple(factors),
            metrics=_count_map(data, "metrics"),
            labels=dict(labels),
            grade=grade,
        )


PAYLOAD_TYPES: dict[str, type[Any]] = {
    **AGGREGATE_TYPES,
    Verdict.kind: Verdict,
    TopKSet.kind: TopKSet,
}


@dataclass(frozen=True, slots=True)
class StageResult:
    """One emitted (key, payload) pair from a named stage."""

    stage: str
    key: Key
    payload: Any

    @property
    def kind(self) -> str:
        return _payload_kind(self.payload)


def _payload_kind(payload: Any) -> str:
    for kind, cls in PAYLOAD_TYPES.items():
        if type(payload) is cls:
            return kind
    raise TypeError(f"Unsupported stage payload type {type(payload).__name__}")


def _key_to_wire(key: Key) -> Any:
    if isinstance(key, CompositeKey):
        return {"primary": key.primary, "secondary": key.secondary, "rank": key.rank}
    return key


def _key_from_wire(raw: Any) -> Key:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, Mapping):
        primary, secondary, rank = raw["primary"], raw["secondary"], raw["rank"]
        if not isinstance(primary, str) or not isinstance(secondary, str) or type(rank) is not int:
            raise TypeError(f"malformed composite key {raw!r}")
        return CompositeKey(primary, secondary, rank)
    raise TypeError(f"key must be a string or composite object; got {type(raw).__name__}")


def result_to_dict(result: StageResult) -> dict[str, Any]:
    """JSON-ready mapping for one result."""
    return {
        "v": SCHEMA_VERSION,
        "stage": result.stage,
        "key": _key_to_wire(result.key),
        "kind": result.kind,
        "data": result.payload.to_dict(),
    }


def result_from_dict(data: Mapping[str, Any], *, expect: Iterable[str] | None = None) -> StageResult:
    """Rebuild a result from :func:`result_to_dict` output.

    Args:
        data (Mapping[str, Any]): Decoded JSON object.
        expect (Iterable[str] | None): Payload kinds the caller accepts.

    Raises:
        IntermediateCorrupt: If any field is missing or mistyped.
    """
    try:
        if not isinstance(data, Mapping):
            raise TypeError(f"expected an object, got {type(data).__name__}")
        version = data.get("v")
        if version != SCHEMA_VERSION:
            raise ValueError(f"schema version {version!r} != {SCHEMA_VERSION}")
        kind = data["kind"]
        if kind not in PAYLOAD_TYPES:
            raise ValueError(f"unknown payload kind {kind!r}")
        if expect is not None and kind not in set(expect):
            raise ValueError(f"payload kind {kind!r} not accepted here")
        stage = data["stage"]
        if not isinstance(stage, str):
            raise TypeError("stage must be a string")
        payload_data = data["data"]
        if not isinstance(payload_data, Mapping):
            raise TypeError("data must be an object")
        payload = PAYLOAD_TYPES[kind].from_dict(payload_data)
        return StageResult(stage=stage, key=_key_from_wire(data["key"]), payload=payload)
    except IntermediateCorrupt:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise IntermediateCorrupt(f"invalid stage result: {exc}") from exc


def encode_result(result: StageResult) -> str:
    """Serialize a result as one compact JSON line (no trailing newline)."""
    return json.dumps(result_to_dict(result), ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def decode_result(line: str | bytes, *, expect: Iterable[str] | None = None) -> StageResult:
    """Parse one line produced by :func:`encode_result`.

    Raises:
        IntermediateCorrupt: On invalid JSON or an invalid result shape.
    """
    try:
        data = json.loads(line)
    except (ValueError, UnicodeDecodeError) as exc:
        raise IntermediateCorrupt(f"invalid JSON: {exc}") from exc
    return result_from_dict(data, expect=expect)


@dataclass(frozen=True)
class ResultDecoder:
    """Picklable line parser bound to the payload kinds a stage accepts."""

    expect: tuple[str, ...] | None = None

    def __call__(self, line: str | bytes) -> StageResult:
        return decode_result(line, expect=self.expect)
