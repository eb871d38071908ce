"""In-memory membership rules for space documents."""

from datetime import datetime
from typing import Optional

from taskflow.permissions.roles import SpaceRole, WorkspaceRole, space_permissions
from taskflow.utils.errors import NotFoundError, ValidationError
from taskflow.utils.helpers import utc_now
from taskflow.workspaces import membership as workspace_membership

NO_ACCESS = {key: False for key in space_permissions(SpaceRole.ADMIN)}


def recount(space: dict) -> dict:
    stats = space.setdefault("stats", {})
    stats["active_members_count"] = len(space.get("members", []))
    stats["total_boards"] = len(space.get("boards", []))
    stats.setdefault("total_tasks", 0)
    stats.setdefault("completed_tasks", 0)
    return space


def find_member(space: dict, user_id: str) -> Optional[dict]:
    for member in space.get("members", []):
        if member["user_id"] == user_id:
            return member
    return None


def role_of(space: dict, user_id: str) -> Optional[str]:
    member = find_member(space, user_id)
    return member["role"] if member else None


def _check_role(role: str) -> str:
    role = getattr(role, "value", role)
    try:
        return SpaceRole(role).value
    except ValueError:
        raise ValidationError(f"Invalid space role: {role}")


def add_member(
    space: dict,
    user_id: str,
    role: str = SpaceRole.MEMBER.value,
    added_by: str = None,
    now: datetime = None,
) -> dict:
    role = _check_role(role)
    existing = find_member(space, user_id)
    if existing is not None:
        existing["role"] = role
        existing["permissions"] = space_permissions(role)
        recount(space)
        return existing

    member = {
        "user_id": user_id,
        "role": role,
        "permissions": space_permissions(role),
        "joined_at": now or utc_now(),
        "added_by": added_by,
    }
    space.setdefault("members", []).append(member)
    recount(space)
    return member


def update_member_role(space: dict, user_id: str, role: str) -> dict:
    role = _check_role(role)
    member = find_member(space, user_id)
    if member is None:
        raise NotFoundError("Member not found")
    member["role"] = role
    member["permissions"] = space_permissions(role)
    recount(space)
    return member


def remove_member(space: dict, user_id: str) -> dict:
    member = find_member(space, user_id)
    if member is None:
        raise NotFoundError("Member not found")
    space["members"] = [m for m in space["members"] if m["user_id"] != user_id]
    recount(space)
    return member


def effective_permissions(space: dict, workspace: Optional[dict], user_id: str) -> dict:
    """Space permissions for a user, folding in their workspace role.

    Workspace owners and admins act as space admins. Other workspace members
    can view boards of non-private spaces they have not joined.
    """
    ws_role = workspace_membership.role_of(workspace, user_id)
    if ws_role in (WorkspaceRole.OWNER.value, WorkspaceRole.ADMIN.value):
        return space_permissions(SpaceRole.ADMIN)

    member = find_member(space, user_id)
    if member is not None and ws_role is not None:
        return dict(member.get("permissions") or space_permissions(member["role"]))

    if ws_role is not None and not space.get("settings", {}).get("is_private", False):
        return space_permissions(SpaceRole.VIEWER)
    return dict(NO_ACCESS)
