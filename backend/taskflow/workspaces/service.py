"""Workspace service: CRUD, members, ownership.

Membership changes are read-modify-write on the workspace document guarded
by its ``version`` field, and run in one transaction with the matching
``user_roles`` updates.
"""

import logging
from typing import List, Optional

from taskflow.activity.service import log_activity
from taskflow.database import get_db, transaction
from taskflow.notifications.schemas import NotificationType
from taskflow.notifications.service import notify_many
from taskflow.permissions import service as roles_service
from taskflow.permissions.roles import BoardCapability, WorkspaceRole, workspace_role_at_least
from taskflow.spaces import membership as space_membership
from taskflow.utils.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from taskflow.utils.helpers import serialize_doc, to_object_id, utc_now
from taskflow.workspaces import membership
from taskflow.workspaces.schemas import WorkspaceStatus, default_settings

logger = logging.getLogger(__name__)


async def load_workspace(workspace_id: str, session=None) -> dict:
    db = get_db()
    doc = await db.workspaces.find_one(
        {"_id": to_object_id(workspace_id, "Workspace")}, session=session
    )
    if doc is None:
        raise NotFoundError("Workspace not found")
    return doc


def require_role(workspace: dict, user_id: str, min_role: str = WorkspaceRole.MEMBER) -> str:
    role = membership.role_of(workspace, user_id)
    if role is None:
        raise PermissionDenied("You are not a member of this workspace")
    if not workspace_role_at_least(role, min_role):
        raise PermissionDenied("Insufficient permissions")
    return role


def _present(workspace: dict, user_id: str = None) -> dict:
    result = serialize_doc(workspace)
    if user_id is not None:
        result["my_role"] = membership.role_of(workspace, user_id)
    return result


async def save_membership(workspace: dict, session=None) -> dict:
    """Persist members/owner/spaces if nobody else wrote since we read."""
    db = get_db()
    version = workspace.get("version", 0)
    membership.recount(workspace)
    result = await db.workspaces.update_one(
        {"_id": workspace["_id"], "version": version},
        {"$set": {
            "owner_id": workspace["owner_id"],
            "members": workspace.get("members", []),
            "spaces": workspace.get("spaces", []),
            "usage.members_count": workspace["usage"]["members_count"],
            "usage.spaces_count": workspace["usage"]["spaces_count"],
            "updated_at": utc_now(),
            "version": version + 1,
        }},
        session=session,
    )
    if result.matched_count == 0:
        raise ConflictError("Workspace was modified by another request, please retry")
    workspace["version"] = version + 1
    return workspace


async def create_workspace(name: str, description: str, owner_id: str) -> dict:
    db = get_db()
    now = utc_now()
    doc = {
        "name": name,
        "description": description or "",
        "owner_id": owner_id,
        "members": [],
        "spaces": [],
        "settings": default_settings(),
        "usage": {"boards_count": 0, "tasks_count": 0},
        "limits": membership.default_limits(),
        "status": WorkspaceStatus.ACTIVE.value,
        "archived_at": None,
        "version": 0,
        "created_at": now,
        "updated_at": now,
    }
    membership.recount(doc)

    async with transaction() as session:
        result = await db.workspaces.insert_one(doc, session=session)
        doc["_id"] = result.inserted_id
        await roles_service.set_workspace_role(owner_id, str(doc["_id"]), WorkspaceRole.OWNER, session=session)

    await log_activity(owner_id, "workspace_created", "workspace", str(doc["_id"]), name,
                       workspace_id=str(doc["_id"]))
    logger.info("Workspace %s created by %s", doc["_id"], owner_id)
    return _present(doc, owner_id)


async def list_workspaces(user_id: str, include_archived: bool = False) -> List[dict]:
    db = get_db()
    query = {"$or": [{"owner_id": user_id}, {"members.user_id": user_id}]}
    if not include_archived:
        query["status"] = WorkspaceStatus.ACTIVE.value
    cursor = db.workspaces.find(query).sort("updated_at", -1)
    return [_present(doc, user_id) async for doc in cursor]


async def get_workspace(workspace_id: str, user_id: str) -> dict:
    workspace = await load_workspace(workspace_id)
    require_role(workspace, user_id)
    return _present(workspace, user_id)


async def update_workspace(workspace_id: str, user_id: str, fields: dict) -> dict:
    db = get_db()
    workspace = await load_workspace(workspace_id)
    require_role(workspace, user_id, WorkspaceRole.ADMIN)

    changes = {k: v for k, v in fields.items() if v is not None}
    changes["updated_at"] = utc_now()
    doc = await db.workspaces.find_one_and_update(
        {"_id": workspace["_id"]}, {"$set": changes}, return_document=True,
    )
    return _present(doc, user_id)


async def update_settings(workspace_id: str, user_id: str, settings: dict) -> dict:
    db = get_db()
    workspace = await load_workspace(workspace_id)
    require_role(workspace, user_id, WorkspaceRole.ADMIN)

    update = {f"settings.{k}": getattr(v, "value", v) for k, v in settings.items() if v is not None}
    if not update:
        raise ValidationError("No settings to update")
    update["updated_at"] = utc_now()
    doc = await db.workspaces.find_one_and_update(
        {"_id": workspace["_id"]}, {"$set": update}, return_document=True,
    )
    return _present(doc, user_id)


async def add_member(
    workspace_id: str,
    user_id: str,
    role: str = WorkspaceRole.MEMBER,
    invited_by: Optional[str] = None,
    session=None,
) -> dict:
    """Add or re-role a member and sync their role cache entry.

    Callers that already hold a transaction pass its session.
    """
    workspace = await load_workspace(workspace_id, session=session)
    if workspace.get("status") != WorkspaceStatus.ACTIVE.value:
        raise ValidationError("Workspace is archived")
    member = membership.add_member(workspace, user_id, role, invited_by=invited_by)

    async with transaction(session) as tx:
        await save_membership(workspace, session=tx)
        await roles_service.set_workspace_role(user_id, str(workspace["_id"]), member["role"], session=tx)
    return serialize_doc(member)


async def add_member_by_email(workspace_id: str, actor_id: str, email: str, role: str) -> dict:
    db = get_db()
    workspace = await load_workspace(workspace_id)
    require_role(workspace, actor_id, WorkspaceRole.ADMIN)

    user = await db.users.find_one({"email": email.lower()})
    if user is None:
        raise NotFoundError("User not found")
    member = await add_member(workspace_id, str(user["_id"]), role, invited_by=actor_id)
    await log_activity(actor_id, "member_added", "workspace", workspace_id, workspace["name"],
                       workspace_id=workspace_id, metadata={"user_id": str(user["_id"]), "role": member["role"]})
    return member


async def update_member_role(workspace_id: str, target_id: str, role: str, actor_id: str) -> dict:
    workspace = await load_workspace(workspace_id)
    actor_role = require_role(workspace, actor_id, WorkspaceRole.ADMIN)
    current = membership.role_of(workspace, target_id)
    if current == WorkspaceRole.ADMIN.value and actor_role != WorkspaceRole.OWNER.value:
        raise PermissionDenied("Only the owner can change an admin's role")

    member = membership.update_member_role(workspace, target_id, role)
    async with transaction() as session:
        await save_membership(workspace, session=session)
        await roles_service.set_workspace_role(target_id, workspace_id, member["role"], session=session)

    await log_activity(actor_id, "member_role_updated", "workspace", workspace_id, workspace["name"],
                       workspace_id=workspace_id, metadata={"user_id": target_id, "role": member["role"]})
    return serialize_doc(member)


async def _remove_from_children(workspace: dict, user_id: str, session=None):
    """Drop a departing member from every space and board of the workspace.

    Boards the member owned are handed to the workspace owner.
    """
    db = get_db()
    workspace_id = str(workspace["_id"])

    async for space in db.spaces.find(
        {"workspace_id": workspace_id, "members.user_id": user_id}, session=session
    ):
        space_membership.remove_member(space, user_id)
        await db.spaces.update_one(
            {"_id": space["_id"]},
            {"$set": {
                "members": space["members"],
                "stats.active_members_count": space["stats"]["active_members_count"],
                "updated_at": utc_now(),
            }, "$inc": {"version": 1}},
            session=session,
        )
        await roles_service.remove_space_role(user_id, str(space["_id"]), session=session)

    heir = workspace["owner_id"]
    async for board in db.boards.find(
        {"workspace_id": workspace_id, "$or": [{"owner_id": user_id}, {"members.user_id": user_id}]},
        {"owner_id": 1},
        session=session,
    ):
        board_id = str(board["_id"])
        if board.get("owner_id") == user_id:
            # Owned boards pass to the workspace owner
            await db.boards.update_one(
                {"_id": board["_id"]},
                {
                    "$set": {"owner_id": heir, "updated_at": utc_now()},
                    "$pull": {"members": {"user_id": {"$in": [user_id, heir]}}},
                    "$inc": {"version": 1},
                },
                session=session,
            )
            await roles_service.set_board_role(heir, board_id, [BoardCapability.MANAGE_MEMBERS.value],
                                               session=session)
            logger.info("Board %s handed to workspace owner %s", board_id, heir)
        else:
            await db.boards.update_one(
                {"_id": board["_id"]},
                {"$pull": {"members": {"user_id": user_id}}, "$inc": {"version": 1}},
                session=session,
            )
        await roles_service.remove_board_role(user_id, board_id, session=session)


async def remove_member(workspace_id: str, target_id: str, actor_id: str) -> None:
    workspace = await load_workspace(workspace_id)
    if target_id != actor_id:
        actor_role = require_role(workspace, actor_id, WorkspaceRole.ADMIN)
        if membership.role_of(workspace, target_id) == WorkspaceRole.ADMIN.value and actor_role != WorkspaceRole.OWNER.value:
            raise PermissionDenied("Only the owner can remove an admin")

    membership.remove_member(workspace, target_id)
    async with transaction() as session:
        await save_membership(workspace, session=session)
        await roles_service.remove_workspace_role(target_id, workspace_id, session=session)
        await _remove_from_children(workspace, target_id, session=session)

    action = "member_left" if target_id == actor_id else "member_removed"
    await log_activity(actor_id, action, "workspace", workspace_id, workspace["name"],
                       workspace_id=workspace_id, metadata={"user_id": target_id})


async def transfer_ownership(workspace_id: str, new_owner_id: str, actor_id: str) -> dict:
    workspace = await load_workspace(workspace_id)
    require_role(workspace, actor_id, WorkspaceRole.OWNER)

    previous = membership.transfer_ownership(workspace, new_owner_id)
    async with transaction() as session:
        await save_membership(workspace, session=session)
        await roles_service.set_workspace_role(previous, workspace_id, WorkspaceRole.ADMIN, session=session)
        await roles_service.set_workspace_role(new_owner_id, workspace_id, WorkspaceRole.OWNER, session=session)

    await log_activity(actor_id, "ownership_transferred", "workspace", workspace_id, workspace["name"],
                       workspace_id=workspace_id, metadata={"from": previous, "to": new_owner_id})
    logger.info("Workspace %s ownership moved %s -> %s", workspace_id, previous, new_owner_id)
    return _present(workspace, actor_id)


async def get_members(workspace_id: str, user_id: str) -> List[dict]:
    db = get_db()
    workspace = await load_workspace(workspace_id)
    require_role(workspace, user_id)

    members = membership.member_list(workspace)
    ids = [to_object_id(m["user_id"], "User") for m in members]
    users = {
        str(u["_id"]): u
        async for u in db.users.find({"_id": {"$in": ids}}, {"email": 1, "full_name": 1})
    }
    result = []
    for member in members:
        user = users.get(member["user_id"], {})
        entry = serialize_doc(member)
        entry["email"] = user.get("email", "")
        entry["full_name"] = user.get("full_name", "")
        result.append(entry)
    return result


async def _set_status(workspace_id: str, user_id: str, status: WorkspaceStatus) -> dict:
    db = get_db()
    workspace = await load_workspace(workspace_id)
    require_role(workspace, user_id, WorkspaceRole.OWNER)
    if workspace.get("status") == status.value:
        raise ValidationError(f"Workspace is already {status.value}")

    archived_at = utc_now() if status == WorkspaceStatus.ARCHIVED else None
    doc = await db.workspaces.find_one_and_update(
        {"_id": workspace["_id"]},
        {"$set": {"status": status.value, "archived_at": archived_at, "updated_at": utc_now()}},
        return_document=True,
    )
    kind = NotificationType.WORKSPACE_ARCHIVED if status == WorkspaceStatus.ARCHIVED else NotificationType.WORKSPACE_RESTORED
    await notify_many(
        [m["user_id"] for m in workspace.get("members", [])],
        sender_id=user_id,
        type=kind,
        title=f"Workspace {status.value}",
        message=f'"{workspace["name"]}" is now {status.value}',
        related_type="workspace",
        related_id=workspace_id,
    )
    return _present(doc, user_id)


async def archive_workspace(workspace_id: str, user_id: str) -> dict:
    return await _set_status(workspace_id, user_id, WorkspaceStatus.ARCHIVED)


async def restore_workspace(workspace_id: str, user_id: str) -> dict:
    return await _set_status(workspace_id, user_id, WorkspaceStatus.ACTIVE)


async def delete_workspace(workspace_id: str, user_id: str) -> None:
    db = get_db()
    workspace = await load_workspace(workspace_id)
    require_role(workspace, user_id, WorkspaceRole.OWNER)

    space_ids = [str(s["_id"]) async for s in db.spaces.find({"workspace_id": workspace_id}, {"_id": 1})]
    board_ids = [str(b["_id"]) async for b in db.boards.find({"workspace_id": workspace_id}, {"_id": 1})]
    task_ids = [str(t["_id"]) async for t in db.tasks.find({"board_id": {"$in": board_ids}}, {"_id": 1})]

    async with transaction() as session:
        await db.checklists.delete_many({"task_id": {"$in": task_ids}}, session=session)
        await db.comments.delete_many({"task_id": {"$in": task_ids}}, session=session)
        await db.tasks.delete_many({"board_id": {"$in": board_ids}}, session=session)
        await db.columns.delete_many({"board_id": {"$in": board_ids}}, session=session)
        await db.boards.delete_many({"workspace_id": workspace_id}, session=session)
        await db.spaces.delete_many({"workspace_id": workspace_id}, session=session)
        await db.invitations.delete_many(
            {"target_entity.id": {"$in": [workspace_id] + space_ids}}, session=session
        )
        await roles_service.purge_entity("workspaces", workspace_id, session=session)
        for space_id in space_ids:
            await roles_service.purge_entity("spaces", space_id, session=session)
        for board_id in board_ids:
            await roles_service.purge_entity("boards", board_id, session=session)
        await db.workspaces.delete_one({"_id": workspace["_id"]}, session=session)

    logger.info("Workspace %s deleted with %d spaces and %d boards", workspace_id, len(space_ids), len(board_ids))
