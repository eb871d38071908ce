"""Recurrence arithmetic for reminders."""

import calendar
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from taskflow.utils.helpers import as_utc


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day (Jan 31 + 1 month = Feb 28/29)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def next_occurrence(current: datetime, frequency: str, interval: int = 1) -> datetime:
    interval = max(1, interval or 1)
    frequency = Frequency(frequency)
    if frequency == Frequency.DAILY:
        return current + timedelta(days=interval)
    if frequency == Frequency.WEEKLY:
        return current + timedelta(weeks=interval)
    if frequency == Frequency.MONTHLY:
        return add_months(current, interval)
    return add_months(current, 12 * interval)


def following_run(reminder: dict, trigger_count: int, now: datetime) -> Optional[datetime]:
    """Next ``scheduled_at`` after a delivery, or None when the series is done.

    ``trigger_count`` already includes the delivery that just happened. Missed
    occurrences are skipped so a long outage does not replay a backlog.
    """
    repeat = reminder.get("repeat") or {}
    if not repeat.get("enabled"):
        return None

    max_occurrences = repeat.get("max_occurrences")
    if max_occurrences and trigger_count >= max_occurrences:
        return None

    candidate = as_utc(reminder["scheduled_at"])
    while True:
        candidate = next_occurrence(candidate, repeat["frequency"], repeat.get("interval", 1))
        if candidate > now:
            break

    end_date = as_utc(repeat.get("end_date"))
    if end_date is not None and candidate > end_date:
        return None
    return candidate
