from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional


class InviteRequest(BaseModel):
    email: EmailStr
    role: str = "member"
    message: Optional[str] = Field(default=None, max_length=500)


class BulkInviteRequest(BaseModel):
    emails: List[EmailStr] = Field(..., min_length=1, max_length=50)
    role: str = "member"
    message: Optional[str] = Field(default=None, max_length=500)


class InviteLinkRequest(BaseModel):
    role: str = "member"
    expires_hours: int = Field(default=72, ge=1, le=720)


class ExtendRequest(BaseModel):
    days: int = Field(default=7, ge=1, le=30)
