"""Board capability checks and member list edits."""

from typing import Iterable, List, Optional

from taskflow.permissions.roles import (
    BoardCapability,
    CAPABILITY_SPACE_PERMISSION,
    WorkspaceRole,
)
from taskflow.utils.errors import NotFoundError, ValidationError
from taskflow.utils.helpers import utc_now

ALL_CAPABILITIES = [c.value for c in BoardCapability]


def find_member(board: dict, user_id: str) -> Optional[dict]:
    for member in board.get("members", []):
        if member["user_id"] == user_id:
            return member
    return None


def normalize_capabilities(capabilities: Iterable[str]) -> List[str]:
    caps = {getattr(c, "value", c) for c in capabilities}
    unknown = caps - set(ALL_CAPABILITIES)
    if unknown:
        raise ValidationError(f"Unknown board permissions: {', '.join(sorted(unknown))}")
    # Any grant implies view
    caps.add(BoardCapability.VIEW.value)
    return [c for c in ALL_CAPABILITIES if c in caps]


def can(
    board: dict,
    user_id: str,
    capability: str,
    space_permissions: Optional[dict] = None,
    workspace_role: Optional[str] = None,
) -> bool:
    capability = BoardCapability(capability)
    if board.get("owner_id") == user_id:
        return True
    if workspace_role in (WorkspaceRole.OWNER.value, WorkspaceRole.ADMIN.value):
        return True
    member = find_member(board, user_id)
    if member is not None and capability.value in member.get("permissions", []):
        return True
    if space_permissions and space_permissions.get(CAPABILITY_SPACE_PERMISSION[capability]):
        return True
    return False


def add_member(board: dict, user_id: str, capabilities: Iterable[str]) -> dict:
    if board.get("owner_id") == user_id:
        raise ValidationError("User already owns this board")
    caps = normalize_capabilities(capabilities)
    existing = find_member(board, user_id)
    if existing is not None:
        existing["permissions"] = caps
        return existing
    member = {"user_id": user_id, "permissions": caps, "added_at": utc_now()}
    board.setdefault("members", []).append(member)
    return member


def update_member(board: dict, user_id: str, capabilities: Iterable[str]) -> dict:
    member = find_member(board, user_id)
    if member is None:
        raise NotFoundError("Board member not found")
    member["permissions"] = normalize_capabilities(capabilities)
    return member


def remove_member(board: dict, user_id: str) -> dict:
    member = find_member(board, user_id)
    if member is None:
        raise NotFoundError("Board member not found")
    board["members"] = [m for m in board["members"] if m["user_id"] != user_id]
    return member
