"""Space service: CRUD, membership and archiving inside a workspace."""

import logging
from typing import List, Optional, Tuple

from taskflow.activity.service import log_activity
from taskflow.database import get_db, transaction
from taskflow.permissions import service as roles_service
from taskflow.permissions.roles import SpaceRole, WorkspaceRole
from taskflow.spaces import membership
from taskflow.utils.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from taskflow.utils.helpers import serialize_doc, to_object_id, utc_now
from taskflow.workspaces import membership as workspace_membership
from taskflow.workspaces.service import load_workspace, require_role, save_membership

logger = logging.getLogger(__name__)


async def load_space(space_id: str, session=None) -> dict:
    db = get_db()
    doc = await db.spaces.find_one({"_id": to_object_id(space_id, "Space")}, session=session)
    if doc is None:
        raise NotFoundError("Space not found")
    return doc


async def space_context(space_id: str, user_id: str, permission: str = "can_view_boards",
                        session=None) -> Tuple[dict, dict, dict]:
    """Load a space with its workspace and the caller's effective permissions."""
    space = await load_space(space_id, session=session)
    workspace = await load_workspace(space["workspace_id"], session=session)
    perms = membership.effective_permissions(space, workspace, user_id)
    if not perms.get("can_view_boards"):
        raise PermissionDenied("You do not have access to this space")
    if not perms.get(permission):
        raise PermissionDenied("Insufficient permissions")
    return space, workspace, perms


def _present(space: dict, perms: Optional[dict] = None) -> dict:
    result = serialize_doc(space)
    if perms is not None:
        result["my_permissions"] = perms
    return result


async def save_space(space: dict, session=None) -> dict:
    """Persist members/boards and derived stats, guarded by ``version``."""
    db = get_db()
    version = space.get("version", 0)
    membership.recount(space)
    result = await db.spaces.update_one(
        {"_id": space["_id"], "version": version},
        {"$set": {
            "members": space.get("members", []),
            "boards": space.get("boards", []),
            "stats.active_members_count": space["stats"]["active_members_count"],
            "stats.total_boards": space["stats"]["total_boards"],
            "updated_at": utc_now(),
            "version": version + 1,
        }},
        session=session,
    )
    if result.matched_count == 0:
        raise ConflictError("Space was modified by another request, please retry")
    space["version"] = version + 1
    return space


async def create_space(workspace_id: str, user_id: str, data: dict) -> dict:
    db = get_db()
    workspace = await load_workspace(workspace_id)
    role = require_role(workspace, user_id)
    if role == WorkspaceRole.MEMBER.value:
        member = workspace_membership.find_member(workspace, user_id)
        if not member.get("permissions", {}).get("can_create_spaces"):
            raise PermissionDenied("You cannot create spaces in this workspace")

    limit = workspace.get("limits", {}).get("max_spaces")
    if limit is not None and len(workspace.get("spaces", [])) >= limit:
        raise ValidationError("Workspace space limit reached")

    now = utc_now()
    doc = {
        "name": data["name"],
        "description": data.get("description") or "",
        "workspace_id": workspace_id,
        "members": [],
        "boards": [],
        "settings": data.get("settings") or {},
        "stats": {"total_tasks": 0, "completed_tasks": 0, "last_activity_at": now},
        "is_archived": False,
        "archived_at": None,
        "archived_by": None,
        "created_by": user_id,
        "version": 0,
        "created_at": now,
        "updated_at": now,
    }
    membership.add_member(doc, user_id, SpaceRole.ADMIN, added_by=user_id, now=now)

    async with transaction() as session:
        result = await db.spaces.insert_one(doc, session=session)
        doc["_id"] = result.inserted_id
        space_id = str(doc["_id"])
        workspace.setdefault("spaces", []).append(space_id)
        await save_membership(workspace, session=session)
        await roles_service.set_space_role(user_id, space_id, SpaceRole.ADMIN, session=session)

    await log_activity(user_id, "space_created", "space", space_id, doc["name"], workspace_id=workspace_id)
    return _present(doc, membership.effective_permissions(doc, workspace, user_id))


async def list_spaces(workspace_id: str, user_id: str, include_archived: bool = False) -> List[dict]:
    db = get_db()
    workspace = await load_workspace(workspace_id)
    require_role(workspace, user_id)

    query = {"workspace_id": workspace_id}
    if not include_archived:
        query["is_archived"] = False
    spaces = []
    async for space in db.spaces.find(query).sort("created_at", 1):
        perms = membership.effective_permissions(space, workspace, user_id)
        if perms.get("can_view_boards"):
            spaces.append(_present(space, perms))
    return spaces


async def get_space(space_id: str, user_id: str) -> dict:
    space, _, perms = await space_context(space_id, user_id)
    return _present(space, perms)


async def update_space(space_id: str, user_id: str, fields: dict) -> dict:
    db = get_db()
    space, _, perms = await space_context(space_id, user_id, "can_edit_settings")
    changes = {k: v for k, v in fields.items() if v is not None}
    changes["updated_at"] = utc_now()
    doc = await db.spaces.find_one_and_update(
        {"_id": space["_id"]}, {"$set": changes}, return_document=True,
    )
    return _present(doc, perms)


async def add_member(space_id: str, user_id: str, role: str = SpaceRole.MEMBER,
                     added_by: Optional[str] = None, session=None) -> dict:
    space = await load_space(space_id, session=session)
    workspace = await load_workspace(space["workspace_id"], session=session)
    if workspace_membership.role_of(workspace, user_id) is None:
        raise ValidationError("User must be a workspace member first")
    if space.get("is_archived"):
        raise ValidationError("Space is archived")

    member = membership.add_member(space, user_id, role, added_by=added_by)
    async with transaction(session) as tx:
        await save_space(space, session=tx)
        await roles_service.set_space_role(user_id, space_id, member["role"], session=tx)
    return serialize_doc(member)


async def add_member_by_email(space_id: str, actor_id: str, email: str, role: str) -> dict:
    db = get_db()
    await space_context(space_id, actor_id, "can_manage_members")
    user = await db.users.find_one({"email": email.lower()})
    if user is None:
        raise NotFoundError("User not found")
    member = await add_member(space_id, str(user["_id"]), role, added_by=actor_id)
    await log_activity(actor_id, "member_added", "space", space_id,
                       metadata={"user_id": str(user["_id"]), "role": member["role"]})
    return member


async def update_member_role(space_id: str, target_id: str, role: str, actor_id: str) -> dict:
    space, _, _ = await space_context(space_id, actor_id, "can_manage_members")
    member = membership.update_member_role(space, target_id, role)
    async with transaction() as session:
        await save_space(space, session=session)
        await roles_service.set_space_role(target_id, space_id, member["role"], session=session)
    return serialize_doc(member)


async def remove_member(space_id: str, target_id: str, actor_id: str) -> None:
    db = get_db()
    if target_id == actor_id:
        space = await load_space(space_id)
    else:
        space, _, _ = await space_context(space_id, actor_id, "can_manage_members")

    membership.remove_member(space, target_id)
    async with transaction() as session:
        await save_space(space, session=session)
        await roles_service.remove_space_role(target_id, space_id, session=session)
        async for board in db.boards.find(
            {"space_id": space_id, "members.user_id": target_id}, {"_id": 1}, session=session
        ):
            await db.boards.update_one(
                {"_id": board["_id"]},
                {"$pull": {"members": {"user_id": target_id}}, "$inc": {"version": 1}},
                session=session,
            )
            await roles_service.remove_board_role(target_id, str(board["_id"]), session=session)

    await log_activity(actor_id, "member_removed", "space", space_id, space["name"],
                       workspace_id=space["workspace_id"], metadata={"user_id": target_id})


async def get_members(space_id: str, user_id: str) -> List[dict]:
    db = get_db()
    space, _, _ = await space_context(space_id, user_id)
    ids = [to_object_id(m["user_id"], "User") for m in space.get("members", [])]
    users = {
        str(u["_id"]): u
        async for u in db.users.find({"_id": {"$in": ids}}, {"email": 1, "full_name": 1})
    }
    result = []
    for member in space.get("members", []):
        entry = serialize_doc(member)
        entry["email"] = users.get(member["user_id"], {}).get("email", "")
        entry["full_name"] = users.get(member["user_id"], {}).get("full_name", "")
        result.append(entry)
    return result


async def _set_archived(space_id: str, user_id: str, archived: bool) -> dict:
    db = get_db()
    space, _, perms = await space_context(space_id, user_id, "can_edit_settings")
    if space.get("is_archived", False) == archived:
        raise ValidationError("Space is already archived" if archived else "Space is not archived")
    doc = await db.spaces.find_one_and_update(
        {"_id": space["_id"]},
        {"$set": {
            "is_archived": archived,
            "archived_at": utc_now() if archived else None,
            "archived_by": user_id if archived else None,
            "updated_at": utc_now(),
        }},
        return_document=True,
    )
    await log_activity(user_id, "space_archived" if archived else "space_unarchived", "space", space_id,
                       space["name"], workspace_id=space["workspace_id"])
    return _present(doc, perms)


async def archive_space(space_id: str, user_id: str) -> dict:
    return await _set_archived(space_id, user_id, True)


async def unarchive_space(space_id: str, user_id: str) -> dict:
    return await _set_archived(space_id, user_id, False)


async def delete_space(space_id: str, user_id: str) -> None:
    db = get_db()
    space, workspace, _ = await space_context(space_id, user_id, "can_edit_settings")
    if membership.role_of(space, user_id) != SpaceRole.ADMIN.value:
        require_role(workspace, user_id, WorkspaceRole.ADMIN)

    board_ids = [str(b["_id"]) async for b in db.boards.find({"space_id": space_id}, {"_id": 1})]
    task_ids = [str(t["_id"]) async for t in db.tasks.find({"space_id": space_id}, {"_id": 1})]
    workspace["spaces"] = [s for s in workspace.get("spaces", []) if s != space_id]

    async with transaction() as session:
        await db.checklists.delete_many({"task_id": {"$in": task_ids}}, session=session)
        await db.comments.delete_many({"task_id": {"$in": task_ids}}, session=session)
        await db.tasks.delete_many({"space_id": space_id}, session=session)
        await db.columns.delete_many({"board_id": {"$in": board_ids}}, session=session)
        await db.boards.delete_many({"space_id": space_id}, session=session)
        await db.invitations.delete_many({"target_entity.id": space_id}, session=session)
        await roles_service.purge_entity("spaces", space_id, session=session)
        for board_id in board_ids:
            await roles_service.purge_entity("boards", board_id, session=session)
        await db.spaces.delete_one({"_id": space["_id"]}, session=session)
        await save_membership(workspace, session=session)
        if board_ids:
            await db.workspaces.update_one(
                {"_id": workspace["_id"]},
                {"$inc": {"usage.boards_count": -len(board_ids), "usage.tasks_count": -len(task_ids)}},
                session=session,
            )

    logger.info("Space %s deleted by %s", space_id, user_id)
