from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from enum import Enum


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class BoardCreationPolicy(str, Enum):
    EVERYONE = "everyone"
    ADMINS = "admins"


class WorkspaceStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class WorkspaceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default="", max_length=1000)


class WorkspaceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)


class WorkspaceSettings(BaseModel):
    allow_member_invites: Optional[bool] = None
    default_member_role: Optional[MemberRole] = None
    board_creation_policy: Optional[BoardCreationPolicy] = None


class AddMemberRequest(BaseModel):
    email: EmailStr
    role: MemberRole = MemberRole.MEMBER


class UpdateMemberRoleRequest(BaseModel):
    role: MemberRole


class TransferOwnershipRequest(BaseModel):
    new_owner_id: str


def default_settings() -> dict:
    return {
        "allow_member_invites": False,
        "default_member_role": MemberRole.MEMBER.value,
        "board_creation_policy": BoardCreationPolicy.EVERYONE.value,
    }
