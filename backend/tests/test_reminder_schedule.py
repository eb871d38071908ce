"""Tests for reminder recurrence."""

from datetime import datetime, timedelta, timezone

from taskflow.reminders import schedule


def _at(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_add_months_clamps_day():
    assert schedule.add_months(_at(2024, 1, 31), 1) == _at(2024, 2, 29)
    assert schedule.add_months(_at(2023, 1, 31), 1) == _at(2023, 2, 28)
    assert schedule.add_months(_at(2024, 11, 15), 3) == _at(2025, 2, 15)


def test_next_occurrence_per_frequency():
    start = _at(2024, 3, 10, 9)
    assert schedule.next_occurrence(start, "daily", 2) == start + timedelta(days=2)
    assert schedule.next_occurrence(start, "weekly") == start + timedelta(weeks=1)
    assert schedule.next_occurrence(start, "monthly") == _at(2024, 4, 10, 9)
    assert schedule.next_occurrence(start, "yearly") == _at(2025, 3, 10, 9)


def test_zero_interval_treated_as_one():
    start = _at(2024, 3, 10)
    assert schedule.next_occurrence(start, "daily", 0) == start + timedelta(days=1)


def test_one_off_reminder_has_no_following_run():
    reminder = {"scheduled_at": _at(2024, 1, 1), "repeat": {"enabled": False}}
    assert schedule.following_run(reminder, 1, _at(2024, 1, 1, 0, 1)) is None


def test_following_run_advances():
    reminder = {
        "scheduled_at": _at(2024, 1, 1, 8),
        "repeat": {"enabled": True, "frequency": "daily", "interval": 1},
    }
    assert schedule.following_run(reminder, 1, _at(2024, 1, 1, 8, 1)) == _at(2024, 1, 2, 8)


def test_following_run_skips_missed_occurrences():
    reminder = {
        "scheduled_at": _at(2024, 1, 1, 8),
        "repeat": {"enabled": True, "frequency": "daily", "interval": 1},
    }
    assert schedule.following_run(reminder, 1, _at(2024, 1, 5, 12)) == _at(2024, 1, 6, 8)


def test_following_run_stops_at_max_occurrences():
    reminder = {
        "scheduled_at": _at(2024, 1, 1),
        "repeat": {"enabled": True, "frequency": "weekly", "max_occurrences": 3},
    }
    assert schedule.following_run(reminder, 2, _at(2024, 1, 1, 1)) is not None
    assert schedule.following_run(reminder, 3, _at(2024, 1, 1, 1)) is None


def test_following_run_stops_after_end_date():
    reminder = {
        "scheduled_at": _at(2024, 1, 1),
        "repeat": {"enabled": True, "frequency": "monthly", "end_date": _at(2024, 1, 20)},
    }
    assert schedule.following_run(reminder, 1, _at(2024, 1, 1, 1)) is None
