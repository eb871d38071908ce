from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from taskflow.notifications.schemas import NotificationPriority
from taskflow.reminders.schedule import Frequency
from taskflow.utils.helpers import as_utc


class ReminderEntityType(str, Enum):
    TASK = "task"
    SPACE = "space"
    BOARD = "board"
    CHECKLIST = "checklist"
    USER = "user"


class ReminderStatus(str, Enum):
    SCHEDULED = "scheduled"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RepeatSettings(BaseModel):
    enabled: bool = False
    frequency: Frequency = Frequency.DAILY
    interval: int = Field(default=1, ge=1, le=365)
    end_date: Optional[datetime] = None
    max_occurrences: Optional[int] = Field(default=None, ge=1)


class ReminderCreate(BaseModel):
    entity_type: ReminderEntityType
    entity_id: str
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(default="", max_length=1000)
    scheduled_at: datetime
    repeat: RepeatSettings = RepeatSettings()
    priority: NotificationPriority = NotificationPriority.MEDIUM

    @model_validator(mode="after")
    def check_end_date(self):
        if self.repeat.end_date and as_utc(self.repeat.end_date) < as_utc(self.scheduled_at):
            raise ValueError("Repeat end date must be after the first run")
        return self


class ReminderUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    message: Optional[str] = Field(default=None, max_length=1000)
    scheduled_at: Optional[datetime] = None
    repeat: Optional[RepeatSettings] = None
    priority: Optional[NotificationPriority] = None


class SnoozeRequest(BaseModel):
    minutes: int = Field(default=15, ge=1, le=10080)
