from pydantic import BaseModel, Field
from typing import List, Optional


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)
    parent_id: Optional[str] = None
    mentions: List[str] = []


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class ReactionRequest(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=32)
