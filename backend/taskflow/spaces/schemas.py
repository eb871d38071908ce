from pydantic import BaseModel, EmailStr, Field
from typing import Optional

from taskflow.permissions.roles import SpaceRole


class SpaceSettings(BaseModel):
    color: str = "#6366f1"
    icon: Optional[str] = None
    is_private: bool = False


class SpaceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default="", max_length=500)
    settings: SpaceSettings = SpaceSettings()


class SpaceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    settings: Optional[SpaceSettings] = None


class SpaceMemberRequest(BaseModel):
    email: EmailStr
    role: SpaceRole = SpaceRole.MEMBER


class SpaceRoleUpdate(BaseModel):
    role: SpaceRole
