from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DependencyType(str, Enum):
    BLOCKS = "blocks"
    BLOCKED_BY = "blocked_by"
    RELATED_TO = "related_to"


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default="", max_length=2000)
    column_id: Optional[str] = None
    position: Optional[int] = Field(default=None, ge=0)
    priority: TaskPriority = TaskPriority.MEDIUM
    assignees: List[str] = []
    tags: List[str] = []
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    priority: Optional[TaskPriority] = None
    assignees: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)


class TaskMove(BaseModel):
    column_id: str
    position: int = Field(default=0, ge=0)


class TaskFilters(BaseModel):
    column_id: Optional[str] = None
    assignee: Optional[str] = None
    priority: Optional[TaskPriority] = None
    status: Optional[str] = None
    tag: Optional[str] = None
    search: Optional[str] = None


class WatcherRequest(BaseModel):
    user_id: str


class DependencyCreate(BaseModel):
    task_id: str
    type: DependencyType = DependencyType.BLOCKED_BY
