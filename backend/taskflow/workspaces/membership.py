"""In-memory membership rules for workspace documents.

These functions mutate the workspace dict they are given and keep the derived
``usage`` counters in step with ``members`` and ``spaces``. Persisting the
result is the service's job.
"""

from datetime import datetime
from typing import Optional

from taskflow.config import settings
from taskflow.permissions.roles import WorkspaceRole, workspace_permissions
from taskflow.utils.errors import NotFoundError, ValidationError
from taskflow.utils.helpers import utc_now

MEMBER_ROLES = (WorkspaceRole.MEMBER.value, WorkspaceRole.ADMIN.value)


def default_limits() -> dict:
    return {
        "max_members": settings.WORKSPACE_MAX_MEMBERS,
        "max_spaces": settings.WORKSPACE_MAX_SPACES,
        "max_boards": settings.WORKSPACE_MAX_BOARDS,
    }


def recount(workspace: dict) -> dict:
    usage = workspace.setdefault("usage", {})
    # Owner is counted but never stored in members
    usage["members_count"] = len(workspace.get("members", [])) + 1
    usage["spaces_count"] = len(workspace.get("spaces", []))
    usage.setdefault("boards_count", 0)
    usage.setdefault("tasks_count", 0)
    return workspace


def find_member(workspace: dict, user_id: str) -> Optional[dict]:
    for member in workspace.get("members", []):
        if member["user_id"] == user_id:
            return member
    return None


def role_of(workspace: dict, user_id: str) -> Optional[str]:
    if workspace is None:
        return None
    if workspace.get("owner_id") == user_id:
        return WorkspaceRole.OWNER.value
    member = find_member(workspace, user_id)
    return member["role"] if member else None


def _check_role(role: str) -> str:
    role = getattr(role, "value", role)
    if role not in MEMBER_ROLES:
        raise ValidationError(f"Invalid workspace member role: {role}")
    return role


def add_member(
    workspace: dict,
    user_id: str,
    role: str = WorkspaceRole.MEMBER.value,
    invited_by: str = None,
    now: datetime = None,
) -> dict:
    """Add a member, or update the role of an existing one."""
    role = _check_role(role)
    if workspace.get("owner_id") == user_id:
        raise ValidationError("User already owns this workspace")

    existing = find_member(workspace, user_id)
    if existing is not None:
        existing["role"] = role
        existing["permissions"] = workspace_permissions(role)
        recount(workspace)
        return existing

    limit = workspace.get("limits", {}).get("max_members", settings.WORKSPACE_MAX_MEMBERS)
    if len(workspace.get("members", [])) + 1 >= limit:
        raise ValidationError("Workspace member limit reached")

    member = {
        "user_id": user_id,
        "role": role,
        "permissions": workspace_permissions(role),
        "joined_at": now or utc_now(),
        "invited_by": invited_by,
    }
    workspace.setdefault("members", []).append(member)
    recount(workspace)
    return member


def update_member_role(workspace: dict, user_id: str, role: str) -> dict:
    role = _check_role(role)
    member = find_member(workspace, user_id)
    if member is None:
        raise NotFoundError("Member not found")
    member["role"] = role
    member["permissions"] = workspace_permissions(role)
    recount(workspace)
    return member


def remove_member(workspace: dict, user_id: str) -> dict:
    if workspace.get("owner_id") == user_id:
        raise ValidationError("Cannot remove the workspace owner")
    member = find_member(workspace, user_id)
    if member is None:
        raise NotFoundError("Member not found")
    workspace["members"] = [m for m in workspace["members"] if m["user_id"] != user_id]
    recount(workspace)
    return member


def transfer_ownership(workspace: dict, new_owner_id: str, now: datetime = None) -> str:
    """Swap the owner; the previous owner stays on as an admin member.

    Returns the previous owner's id.
    """
    previous = workspace["owner_id"]
    if new_owner_id == previous:
        raise ValidationError("User already owns this workspace")
    if find_member(workspace, new_owner_id) is None:
        raise ValidationError("New owner must be a member of the workspace")

    members = [m for m in workspace.get("members", []) if m["user_id"] != new_owner_id]
    members.append({
        "user_id": previous,
        "role": WorkspaceRole.ADMIN.value,
        "permissions": workspace_permissions(WorkspaceRole.ADMIN),
        "joined_at": now or utc_now(),
        "invited_by": None,
    })
    workspace["members"] = members
    workspace["owner_id"] = new_owner_id
    recount(workspace)
    return previous


def member_list(workspace: dict) -> list:
    """Owner first, then stored members."""
    owner = {
        "user_id": workspace["owner_id"],
        "role": WorkspaceRole.OWNER.value,
        "permissions": workspace_permissions(WorkspaceRole.OWNER),
        "joined_at": workspace.get("created_at"),
    }
    return [owner] + list(workspace.get("members", []))
