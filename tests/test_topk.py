import itertools

import pytest

from txroll.core.topk import TopKEntry, TopKSet, predominant, top_counts

VALUES = [("a", 5), ("b", 1), ("c", 9), ("d", 3), ("e", 9)]


def _entries():
    return [TopKEntry(ident, value) for ident, value in VALUES]


def test_top_two_keeps_both_tied_leaders():
    top = TopKSet.of(2, _entries())
    assert [(e.identifier, e.value) for e in top] == [("c", 9), ("e", 9)]


def test_top_three_adds_next_best():
    top = TopKSet.of(3, _entries())
    assert [e.value for e in top] == [9, 9, 5]
    assert top.identifiers() == ["c", "e", "a"]


def test_ties_break_on_identifier_regardless_of_arrival_order():
    entries = [TopKEntry("y", 4), TopKEntry("x", 4), TopKEntry("z", 4)]
    expected = None
    for perm in itertools.permutations(entries):
        top = TopKSet.empty(2)
        for entry in perm:
            top = top.insert(entry)
        if expected is None:
            expected = top
        assert top == expected
    assert expected.identifiers() == ["x", "y"]


def test_zero_capacity_is_always_empty():
    top = TopKSet.of(0, _entries())
    assert len(top) == 0
    assert len(top.insert(TopKEntry("a", 100))) == 0
    assert len(top.merge(TopKSet.empty(0))) == 0


def test_merge_matches_building_from_all_entries():
    left = TopKSet.of(3, _entries()[:2])
    right = TopKSet.of(3, _entries()[2:])
    assert left.merge(right) == TopKSet.of(3, _entries())
    assert right.merge(left) == TopKSet.of(3, _entries())


def test_merge_with_different_bound_raises():
    with pytest.raises(ValueError):
        TopKSet.empty(2).merge(TopKSet.empty(3))


def test_constructor_rejects_overfull_and_negative_sets():
    with pytest.raises(ValueError):
        TopKSet(k=1, entries=(TopKEntry("a", 1), TopKEntry("b", 2)))
    with pytest.raises(ValueError):
        TopKSet.empty(-1)


def test_from_dict_validates_entries():
    top = TopKSet.of(2, _entries())
    assert TopKSet.from_dict(top.to_dict()) == top

    with pytest.raises(ValueError):
        TopKSet.from_dict({"k": 2, "entries": [["a", 1], ["b", 2]]})
    with pytest.raises(TypeError):
        TopKSet.from_dict({"k": 2, "entries": [["a", True]]})
    with pytest.raises(TypeError):
        TopKSet.from_dict({"k": 2.0, "entries": []})


def test_top_counts_and_predominant():
    counts = {"NY": 3, "CA": 3, "TX": 1}
    assert top_counts(counts, 2).identifiers() == ["CA", "NY"]
    assert predominant(counts, "NONE") == "CA"
    assert predominant({}, "NONE") == "NONE"
