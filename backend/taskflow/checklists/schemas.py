from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class ChecklistCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    require_complete_order: bool = False
    items: List[str] = []


class ChecklistUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    require_complete_order: Optional[bool] = None


class ItemCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)
    position: Optional[int] = Field(default=None, ge=0)
    assigned_to: Optional[str] = None
    due_date: Optional[datetime] = None


class ItemUpdate(BaseModel):
    text: Optional[str] = Field(default=None, min_length=1, max_length=500)
    completed: Optional[bool] = None
    assigned_to: Optional[str] = None
    due_date: Optional[datetime] = None


class ItemReorder(BaseModel):
    ordered_ids: List[str]
