"""Role names, default permission sets and the per-user role cache layout.

Every user has one ``user_roles`` document::

    {
        "user_id": str,
        "system_role": "user",
        "workspaces": [{"workspace_id", "role", "permissions", "joined_at"}],
        "spaces": [{"space_id", "role", "permissions", "joined_at"}],
        "boards": [{"board_id", "role", "permissions", "joined_at"}],
    }

The arrays mirror the ``owner_id``/``members`` fields of the workspace, space
and board documents, which stay authoritative.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional


class SystemRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    USER = "user"


class WorkspaceRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class SpaceRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class BoardRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class BoardCapability(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
    MANAGE_COLUMNS = "manage_columns"
    MANAGE_MEMBERS = "manage_members"


WORKSPACE_ROLE_LEVELS = {
    WorkspaceRole.MEMBER: 1,
    WorkspaceRole.ADMIN: 2,
    WorkspaceRole.OWNER: 3,
}

WORKSPACE_PERMISSIONS = {
    WorkspaceRole.MEMBER: {
        "can_create_spaces": True,
        "can_manage_members": False,
        "can_edit_settings": False,
        "can_manage_billing": False,
        "can_delete_workspace": False,
    },
    WorkspaceRole.ADMIN: {
        "can_create_spaces": True,
        "can_manage_members": True,
        "can_edit_settings": True,
        "can_manage_billing": False,
        "can_delete_workspace": False,
    },
    WorkspaceRole.OWNER: {
        "can_create_spaces": True,
        "can_manage_members": True,
        "can_edit_settings": True,
        "can_manage_billing": True,
        "can_delete_workspace": True,
    },
}

_SPACE_PERMISSION_KEYS = [
    "can_view_boards",
    "can_create_boards",
    "can_edit_boards",
    "can_delete_boards",
    "can_create_tasks",
    "can_edit_tasks",
    "can_delete_tasks",
    "can_manage_members",
    "can_edit_settings",
]

_SPACE_GRANTS = {
    SpaceRole.VIEWER: {"can_view_boards"},
    SpaceRole.MEMBER: {"can_view_boards", "can_create_boards", "can_create_tasks", "can_edit_tasks"},
    SpaceRole.ADMIN: set(_SPACE_PERMISSION_KEYS),
}

BOARD_ROLE_PERMISSIONS = {
    BoardRole.VIEWER: {
        "can_view": True,
        "can_edit": False,
        "can_create_tasks": False,
        "can_edit_tasks": False,
        "can_delete_tasks": False,
        "can_manage_columns": False,
    },
    BoardRole.MEMBER: {
        "can_view": True,
        "can_edit": True,
        "can_create_tasks": True,
        "can_edit_tasks": True,
        "can_delete_tasks": False,
        "can_manage_columns": False,
    },
    BoardRole.ADMIN: {
        "can_view": True,
        "can_edit": True,
        "can_create_tasks": True,
        "can_edit_tasks": True,
        "can_delete_tasks": True,
        "can_manage_columns": True,
    },
}

# Board capability -> space permission that also grants it
CAPABILITY_SPACE_PERMISSION = {
    BoardCapability.VIEW: "can_view_boards",
    BoardCapability.EDIT: "can_edit_boards",
    BoardCapability.DELETE: "can_delete_boards",
    BoardCapability.MANAGE_COLUMNS: "can_edit_boards",
    BoardCapability.MANAGE_MEMBERS: "can_manage_members",
}

# user_roles array name -> id field inside each entry
ENTRY_KEYS = {
    "workspaces": "workspace_id",
    "spaces": "space_id",
    "boards": "board_id",
}


def workspace_permissions(role: str) -> Dict[str, bool]:
    return dict(WORKSPACE_PERMISSIONS[WorkspaceRole(role)])


def space_permissions(role: str) -> Dict[str, bool]:
    grants = _SPACE_GRANTS[SpaceRole(role)]
    return {key: key in grants for key in _SPACE_PERMISSION_KEYS}


def board_permissions(role: str) -> Dict[str, bool]:
    return dict(BOARD_ROLE_PERMISSIONS[BoardRole(role)])


def board_role_for(capabilities: Iterable[str]) -> BoardRole:
    caps = set(capabilities)
    if BoardCapability.MANAGE_MEMBERS.value in caps:
        return BoardRole.ADMIN
    if BoardCapability.EDIT.value in caps:
        return BoardRole.MEMBER
    return BoardRole.VIEWER


def workspace_role_at_least(role: Optional[str], required: str) -> bool:
    if role is None:
        return False
    return WORKSPACE_ROLE_LEVELS[WorkspaceRole(role)] >= WORKSPACE_ROLE_LEVELS[WorkspaceRole(required)]


def expected_entries(
    user_id: str,
    workspaces: Iterable[dict],
    spaces: Iterable[dict],
    boards: Iterable[dict],
) -> Dict[str, List[dict]]:
    """Derive the role cache arrays for a user from authoritative documents.

    Space and board entries only count inside workspaces the user belongs to.
    """
    result = {"workspaces": [], "spaces": [], "boards": []}

    for ws in workspaces:
        if ws.get("owner_id") == user_id:
            role = WorkspaceRole.OWNER.value
        else:
            member = next((m for m in ws.get("members", []) if m["user_id"] == user_id), None)
            if member is None:
                continue
            role = member["role"]
        result["workspaces"].append({
            "workspace_id": str(ws["_id"]),
            "role": role,
            "permissions": workspace_permissions(role),
        })

    joined = {entry["workspace_id"] for entry in result["workspaces"]}

    for space in spaces:
        if str(space.get("workspace_id")) not in joined:
            continue
        member = next((m for m in space.get("members", []) if m["user_id"] == user_id), None)
        if member is None:
            continue
        result["spaces"].append({
            "space_id": str(space["_id"]),
            "role": member["role"],
            "permissions": space_permissions(member["role"]),
        })

    for board in boards:
        if str(board.get("workspace_id")) not in joined:
            continue
        if board.get("owner_id") == user_id:
            role = BoardRole.ADMIN
        else:
            member = next((m for m in board.get("members", []) if m["user_id"] == user_id), None)
            if member is None:
                continue
            role = board_role_for(member.get("permissions", []))
        result["boards"].append({
            "board_id": str(board["_id"]),
            "role": role.value,
            "permissions": board_permissions(role),
        })

    return result


def diff_entries(cached: Dict[str, List[dict]], expected: Dict[str, List[dict]]) -> List[dict]:
    """List disagreements between a user's cached roles and the expected ones."""
    drift = []
    for array, key in ENTRY_KEYS.items():
        have = {e[key]: e.get("role") for e in cached.get(array, [])}
        want = {e[key]: e["role"] for e in expected.get(array, [])}
        for entity_id in sorted(set(have) | set(want)):
            if have.get(entity_id) == want.get(entity_id):
                continue
            drift.append({
                "scope": array,
                "entity_id": entity_id,
                "cached_role": have.get(entity_id),
                "actual_role": want.get(entity_id),
            })
    return drift
