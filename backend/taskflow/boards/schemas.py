from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum

from taskflow.permissions.roles import BoardCapability


class BoardType(str, Enum):
    KANBAN = "kanban"
    LIST = "list"
    CALENDAR = "calendar"
    TIMELINE = "timeline"


class BoardVisibility(str, Enum):
    PRIVATE = "private"
    WORKSPACE = "workspace"
    PUBLIC = "public"


DEFAULT_COLUMNS = [
    ("To Do", "todo", "#6B7280"),
    ("In Progress", "in_progress", "#3B82F6"),
    ("Review", "review", "#F59E0B"),
    ("Done", "done", "#10B981"),
]


class BoardCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default="", max_length=500)
    type: BoardType = BoardType.KANBAN
    visibility: BoardVisibility = BoardVisibility.WORKSPACE


class BoardUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    type: Optional[BoardType] = None
    visibility: Optional[BoardVisibility] = None
    archived: Optional[bool] = None


class BoardMemberRequest(BaseModel):
    user_id: str
    permissions: List[BoardCapability] = [BoardCapability.VIEW]


class BoardMemberUpdate(BaseModel):
    permissions: List[BoardCapability]
