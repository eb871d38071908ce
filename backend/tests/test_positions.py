"""Tests for dense list ordering."""

import pytest

from taskflow.boards import positions
from taskflow.utils.errors import NotFoundError, ValidationError


def _entries(*ids):
    return [{"task_id": task_id, "position": i} for i, task_id in enumerate(ids)]


def _order(entries):
    return [e["task_id"] for e in sorted(entries, key=lambda e: e["position"])]


def test_normalize_closes_gaps():
    entries = [{"task_id": "a", "position": 4}, {"task_id": "b", "position": 1}]
    result = positions.normalize(entries)
    assert _order(result) == ["b", "a"]
    assert positions.is_dense(result)


def test_insert_at_shifts_neighbours():
    result = positions.insert_at(_entries("a", "b", "c"), {"task_id": "x"}, 1)
    assert _order(result) == ["a", "x", "b", "c"]
    assert positions.is_dense(result)


def test_insert_at_without_position_appends():
    result = positions.insert_at(_entries("a", "b"), {"task_id": "x"})
    assert _order(result) == ["a", "b", "x"]


def test_insert_at_clamps_out_of_range():
    result = positions.insert_at(_entries("a"), {"task_id": "x"}, -3)
    assert _order(result) == ["x", "a"]


def test_insert_existing_entry_moves_it():
    result = positions.insert_at(_entries("a", "b", "c"), {"task_id": "c"}, 0)
    assert _order(result) == ["c", "a", "b"]
    assert len(result) == 3


def test_remove_keeps_positions_dense():
    result = positions.remove(_entries("a", "b", "c"), "b")
    assert _order(result) == ["a", "c"]
    assert positions.is_dense(result)


def test_remove_missing_raises():
    with pytest.raises(NotFoundError):
        positions.remove(_entries("a"), "zzz")


def test_move_down_and_up():
    down = positions.move(_entries("a", "b", "c", "d"), "a", 2)
    assert _order(down) == ["b", "c", "a", "d"]
    up = positions.move(_entries("a", "b", "c", "d"), "d", 1)
    assert _order(up) == ["a", "d", "b", "c"]
    assert positions.is_dense(down) and positions.is_dense(up)


def test_move_beyond_end_goes_last():
    result = positions.move(_entries("a", "b", "c"), "a", 99)
    assert _order(result) == ["b", "c", "a"]


def test_reorder_applies_full_order():
    result = positions.reorder(_entries("a", "b", "c"), ["c", "a", "b"])
    assert _order(result) == ["c", "a", "b"]


def test_reorder_rejects_partial_or_duplicate_lists():
    with pytest.raises(ValidationError):
        positions.reorder(_entries("a", "b", "c"), ["a", "b"])
    with pytest.raises(ValidationError):
        positions.reorder(_entries("a", "b"), ["a", "a"])


def test_inputs_are_not_mutated():
    original = _entries("a", "b")
    positions.move(original, "a", 1)
    assert original == _entries("a", "b")
