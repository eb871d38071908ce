from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    TASK_ASSIGNED = "task_assigned"
    TASK_UPDATED = "task_updated"
    TASK_COMPLETED = "task_completed"
    TASK_OVERDUE = "task_overdue"
    COMMENT_ADDED = "comment_added"
    COMMENT_MENTIONED = "comment_mentioned"
    BOARD_INVITED = "board_invited"
    WORKSPACE_INVITATION = "workspace_invitation"
    SPACE_INVITATION = "space_invitation"
    INVITATION_ACCEPTED = "invitation_accepted"
    DUE_DATE_REMINDER = "due_date_reminder"
    WORKSPACE_ARCHIVED = "workspace_archived"
    WORKSPACE_RESTORED = "workspace_restored"
    SYSTEM_ALERT = "system_alert"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationQuery(BaseModel):
    unread_only: bool = False
    type: Optional[NotificationType] = None
    limit: int = Field(default=20, ge=1, le=100)
    skip: int = Field(default=0, ge=0)
