from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum


class StatusMapping(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"
    ARCHIVED = "archived"


class WipLimit(BaseModel):
    enabled: bool = False
    limit: Optional[int] = Field(default=None, ge=1)
    strict_mode: bool = False


class ColumnCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    position: Optional[int] = Field(default=None, ge=0)
    color: str = "#6B7280"
    status_mapping: Optional[StatusMapping] = None
    wip_limit: WipLimit = WipLimit()


class ColumnUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = None
    status_mapping: Optional[StatusMapping] = None
    wip_limit: Optional[WipLimit] = None


class ReorderRequest(BaseModel):
    ordered_ids: List[str]
