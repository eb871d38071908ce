"""Tests for checklist completion rules."""

import pytest

from taskflow.checklists.service import recount, set_completed
from taskflow.utils.errors import NotFoundError, ValidationError


def _checklist(ordered=False, done=()):
    items = [
        {"id": item_id, "text": item_id, "position": i, "completed": item_id in done}
        for i, item_id in enumerate(["a", "b", "c"])
    ]
    return {"items": items, "settings": {"require_complete_order": ordered}}


def test_recount_percentage():
    checklist = recount(_checklist(done=("a",)))
    assert checklist["stats"] == {"total_items": 3, "completed_items": 1, "completion_percentage": 33}


def test_recount_empty():
    assert recount({"items": []})["stats"]["completion_percentage"] == 0


def test_set_completed_records_who():
    checklist = set_completed(_checklist(), "b", True, "u1")
    item = next(i for i in checklist["items"] if i["id"] == "b")
    assert item["completed"] and item["completed_by"] == "u1"
    assert checklist["stats"]["completed_items"] == 1


def test_uncomplete_clears_fields():
    checklist = set_completed(_checklist(done=("a",)), "a", False, "u1")
    item = checklist["items"][0]
    assert not item["completed"] and item["completed_at"] is None


def test_ordered_checklist_blocks_skipping_ahead():
    with pytest.raises(ValidationError):
        set_completed(_checklist(ordered=True), "c", True, "u1")
    checklist = set_completed(_checklist(ordered=True, done=("a", "b")), "c", True, "u1")
    assert checklist["stats"]["completed_items"] == 3


def test_unknown_item():
    with pytest.raises(NotFoundError):
        set_completed(_checklist(), "zzz", True, "u1")
