"""User role cache: reads, synced writes, drift detection and reconciliation."""

import logging
from typing import Dict, List, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from taskflow.database import get_db
from taskflow.permissions import roles
from taskflow.permissions.roles import SystemRole, WorkspaceRole
from taskflow.spaces import membership as space_membership
from taskflow.utils.helpers import serialize_doc, to_object_id, utc_now
from taskflow.workspaces import membership

logger = logging.getLogger(__name__)


def _empty_fields(user_id: str, exclude: str = None) -> dict:
    fields = {"system_role": SystemRole.USER.value, "created_at": utc_now()}
    for array in roles.ENTRY_KEYS:
        if array != exclude:
            fields[array] = []
    return fields


async def ensure_user_roles(user_id: str, session=None):
    db = get_db()
    await db.user_roles.update_one(
        {"user_id": user_id},
        {"$setOnInsert": _empty_fields(user_id)},
        upsert=True,
        session=session,
    )


async def get_user_roles(user_id: str) -> dict:
    db = get_db()
    doc = await db.user_roles.find_one({"user_id": user_id})
    if doc is None:
        doc = {"user_id": user_id, **_empty_fields(user_id)}
    return serialize_doc(doc)


async def _set_entry(user_id: str, array: str, entity_id: str, fields: dict, session=None):
    db = get_db()
    key = roles.ENTRY_KEYS[array]
    now = utc_now()
    positional = {f"{array}.$.{name}": value for name, value in fields.items()}
    positional["updated_at"] = now
    try:
        result = await db.user_roles.update_one(
            {"user_id": user_id, f"{array}.{key}": entity_id},
            {"$set": positional},
            session=session,
        )
        if result.matched_count:
            return

        entry = {key: entity_id, **fields, "joined_at": now}
        try:
            await db.user_roles.update_one(
                {"user_id": user_id, f"{array}.{key}": {"$ne": entity_id}},
                {
                    "$push": {array: entry},
                    "$set": {"updated_at": now},
                    "$setOnInsert": _empty_fields(user_id, exclude=array),
                },
                upsert=True,
                session=session,
            )
        except DuplicateKeyError:
            # Another writer inserted the entry between our two updates
            await db.user_roles.update_one(
                {"user_id": user_id, f"{array}.{key}": entity_id},
                {"$set": positional},
                session=session,
            )
    except PyMongoError:
        logger.error("Role sync failed: user=%s %s=%s", user_id, key, entity_id)
        raise


async def _pull_entry(user_id: str, array: str, entity_id: str, session=None):
    db = get_db()
    key = roles.ENTRY_KEYS[array]
    try:
        await db.user_roles.update_one(
            {"user_id": user_id},
            {"$pull": {array: {key: entity_id}}, "$set": {"updated_at": utc_now()}},
            session=session,
        )
    except PyMongoError:
        logger.error("Role removal failed: user=%s %s=%s", user_id, key, entity_id)
        raise


async def set_workspace_role(user_id: str, workspace_id: str, role: str, session=None):
    role = WorkspaceRole(role).value
    await _set_entry(user_id, "workspaces", workspace_id, {
        "role": role,
        "permissions": roles.workspace_permissions(role),
    }, session=session)


async def remove_workspace_role(user_id: str, workspace_id: str, session=None):
    await _pull_entry(user_id, "workspaces", workspace_id, session=session)


async def set_space_role(user_id: str, space_id: str, role: str, session=None):
    role = roles.SpaceRole(role).value
    await _set_entry(user_id, "spaces", space_id, {
        "role": role,
        "permissions": roles.space_permissions(role),
    }, session=session)


async def remove_space_role(user_id: str, space_id: str, session=None):
    await _pull_entry(user_id, "spaces", space_id, session=session)


async def set_board_role(user_id: str, board_id: str, capabilities: List[str], session=None):
    role = roles.board_role_for(capabilities)
    await _set_entry(user_id, "boards", board_id, {
        "role": role.value,
        "permissions": roles.board_permissions(role),
    }, session=session)


async def remove_board_role(user_id: str, board_id: str, session=None):
    await _pull_entry(user_id, "boards", board_id, session=session)


async def purge_entity(array: str, entity_id: str, session=None):
    """Drop every user's cache entry for a deleted entity."""
    db = get_db()
    key = roles.ENTRY_KEYS[array]
    await db.user_roles.update_many(
        {f"{array}.{key}": entity_id},
        {"$pull": {array: {key: entity_id}}, "$set": {"updated_at": utc_now()}},
        session=session,
    )


async def has_workspace_role(user_id: str, workspace_id: str, min_role: str = WorkspaceRole.MEMBER) -> bool:
    """Check against the workspace document, not the cache."""
    db = get_db()
    workspace = await db.workspaces.find_one(
        {"_id": to_object_id(workspace_id, "Workspace")},
        {"owner_id": 1, "members": 1},
    )
    if workspace is None:
        return False
    return roles.workspace_role_at_least(membership.role_of(workspace, user_id), min_role)


async def has_space_permission(user_id: str, space_id: str, permission: str) -> bool:
    db = get_db()
    space = await db.spaces.find_one({"_id": to_object_id(space_id, "Space")})
    if space is None:
        return False
    workspace = await db.workspaces.find_one(
        {"_id": to_object_id(space["workspace_id"], "Workspace")},
        {"owner_id": 1, "members": 1},
    )
    if workspace is None:
        return False
    perms = space_membership.effective_permissions(space, workspace, user_id)
    return bool(perms.get(permission))


async def _expected_for(user_id: str) -> Dict[str, List[dict]]:
    db = get_db()
    workspaces = await db.workspaces.find(
        {"$or": [{"owner_id": user_id}, {"members.user_id": user_id}]},
        {"owner_id": 1, "members": 1},
    ).to_list(length=None)
    spaces = await db.spaces.find(
        {"members.user_id": user_id}, {"workspace_id": 1, "members": 1},
    ).to_list(length=None)
    boards = await db.boards.find(
        {"$or": [{"owner_id": user_id}, {"members.user_id": user_id}]},
        {"workspace_id": 1, "owner_id": 1, "members": 1},
    ).to_list(length=None)
    return roles.expected_entries(user_id, workspaces, spaces, boards)


async def find_role_drift(user_id: str) -> List[dict]:
    db = get_db()
    cached = await db.user_roles.find_one({"user_id": user_id}) or {}
    expected = await _expected_for(user_id)
    return roles.diff_entries(cached, expected)


async def reconcile_user_roles(user_id: str) -> dict:
    """Rebuild a user's role cache from the membership arrays.

    ``system_role`` and the ``joined_at`` of surviving entries are preserved.
    """
    db = get_db()
    cached = await db.user_roles.find_one({"user_id": user_id}) or {}
    expected = await _expected_for(user_id)
    drift = roles.diff_entries(cached, expected)

    now = utc_now()
    rebuilt = {}
    for array, key in roles.ENTRY_KEYS.items():
        joined = {e[key]: e.get("joined_at") for e in cached.get(array, [])}
        rebuilt[array] = [
            {**entry, "joined_at": joined.get(entry[key]) or now}
            for entry in expected[array]
        ]

    await db.user_roles.update_one(
        {"user_id": user_id},
        {
            "$set": {**rebuilt, "updated_at": now},
            "$setOnInsert": {"system_role": SystemRole.USER.value, "created_at": now},
        },
        upsert=True,
    )
    if drift:
        logger.warning("Reconciled %d role entries for user %s", len(drift), user_id)
    return {"user_id": user_id, "fixed": drift}


def is_system_admin(user: dict, user_roles: Optional[dict] = None) -> bool:
    role = (user_roles or {}).get("system_role") or user.get("role", SystemRole.USER.value)
    return role in (SystemRole.ADMIN.value, SystemRole.SUPER_ADMIN.value)
