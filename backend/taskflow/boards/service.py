"""Board service: CRUD with default columns, and per-board members."""

import logging
from typing import List, Tuple

from taskflow.activity.service import log_activity
from taskflow.boards import membership
from taskflow.boards.schemas import DEFAULT_COLUMNS, BoardVisibility
from taskflow.database import get_db, transaction
from taskflow.permissions import service as roles_service
from taskflow.permissions.roles import BoardCapability, WorkspaceRole
from taskflow.spaces import membership as space_membership
from taskflow.spaces.service import load_space, save_space, space_context
from taskflow.utils.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from taskflow.utils.helpers import serialize_doc, to_object_id, utc_now
from taskflow.workspaces import membership as workspace_membership
from taskflow.workspaces.service import load_workspace, require_role

logger = logging.getLogger(__name__)


async def load_board(board_id: str, session=None) -> dict:
    db = get_db()
    doc = await db.boards.find_one({"_id": to_object_id(board_id, "Board")}, session=session)
    if doc is None:
        raise NotFoundError("Board not found")
    return doc


def allowed(board: dict, space: dict, workspace: dict, user_id: str, capability: str) -> bool:
    ws_role = workspace_membership.role_of(workspace, user_id)
    if ws_role is None:
        return False
    space_perms = None
    if board.get("visibility") != BoardVisibility.PRIVATE.value:
        space_perms = space_membership.effective_permissions(space, workspace, user_id)
    return membership.can(board, user_id, capability, space_perms, ws_role)


async def board_context(board_id: str, user_id: str, capability: str = BoardCapability.VIEW,
                        session=None) -> Tuple[dict, dict, dict]:
    board = await load_board(board_id, session=session)
    space = await load_space(board["space_id"], session=session)
    workspace = await load_workspace(board["workspace_id"], session=session)
    if not allowed(board, space, workspace, user_id, capability):
        raise PermissionDenied("You do not have permission for this board")
    return board, space, workspace


async def save_board_members(board: dict, session=None) -> dict:
    db = get_db()
    version = board.get("version", 0)
    result = await db.boards.update_one(
        {"_id": board["_id"], "version": version},
        {"$set": {"members": board.get("members", []), "updated_at": utc_now(), "version": version + 1}},
        session=session,
    )
    if result.matched_count == 0:
        raise ConflictError("Board was modified by another request, please retry")
    board["version"] = version + 1
    return board


async def board_columns(board_id: str, session=None) -> List[dict]:
    db = get_db()
    cursor = db.columns.find({"board_id": board_id}, session=session).sort("position", 1)
    return [doc async for doc in cursor]


async def create_board(space_id: str, user_id: str, data: dict) -> dict:
    db = get_db()
    space, workspace, _ = await space_context(space_id, user_id, "can_create_boards")
    if space.get("is_archived"):
        raise ValidationError("Space is archived")
    if workspace.get("settings", {}).get("board_creation_policy") == "admins":
        require_role(workspace, user_id, WorkspaceRole.ADMIN)

    usage = workspace.get("usage", {})
    limit = workspace.get("limits", {}).get("max_boards")
    if limit is not None and usage.get("boards_count", 0) >= limit:
        raise ValidationError("Workspace board limit reached")

    now = utc_now()
    doc = {
        "name": data["name"],
        "description": data.get("description") or "",
        "type": getattr(data.get("type"), "value", data.get("type")) or "kanban",
        "visibility": getattr(data.get("visibility"), "value", data.get("visibility")) or "workspace",
        "space_id": space_id,
        "workspace_id": space["workspace_id"],
        "owner_id": user_id,
        "members": [],
        "settings": {"allow_comments": True, "allow_attachments": True},
        "archived": False,
        "version": 0,
        "created_at": now,
        "updated_at": now,
    }

    async with transaction() as session:
        result = await db.boards.insert_one(doc, session=session)
        doc["_id"] = result.inserted_id
        board_id = str(doc["_id"])
        columns = [
            {
                "name": name,
                "board_id": board_id,
                "position": position,
                "task_ids": [],
                "settings": {"wip_limit": {"enabled": False, "limit": None, "strict_mode": False}},
                "status_mapping": status,
                "color": color,
                "is_default": True,
                "stats": {"total_tasks": 0},
                "version": 0,
                "created_by": user_id,
                "created_at": now,
                "updated_at": now,
            }
            for position, (name, status, color) in enumerate(DEFAULT_COLUMNS)
        ]
        await db.columns.insert_many(columns, session=session)
        space.setdefault("boards", []).append(board_id)
        await save_space(space, session=session)
        await db.workspaces.update_one(
            {"_id": workspace["_id"]}, {"$inc": {"usage.boards_count": 1}}, session=session
        )
        await roles_service.set_board_role(user_id, board_id, membership.ALL_CAPABILITIES, session=session)

    await log_activity(user_id, "board_created", "board", board_id, doc["name"],
                       workspace_id=doc["workspace_id"], board_id=board_id)
    result = serialize_doc(doc)
    result["columns"] = [serialize_doc(c) for c in columns]
    return result


async def list_boards(space_id: str, user_id: str, include_archived: bool = False) -> List[dict]:
    db = get_db()
    space, workspace, _ = await space_context(space_id, user_id)
    query = {"space_id": space_id}
    if not include_archived:
        query["archived"] = False
    boards = []
    async for board in db.boards.find(query).sort("created_at", 1):
        if allowed(board, space, workspace, user_id, BoardCapability.VIEW):
            boards.append(serialize_doc(board))
    return boards


async def get_board(board_id: str, user_id: str) -> dict:
    board, space, workspace = await board_context(board_id, user_id)
    result = serialize_doc(board)
    result["columns"] = [serialize_doc(c) for c in await board_columns(board_id)]
    result["my_capabilities"] = [
        c for c in membership.ALL_CAPABILITIES if allowed(board, space, workspace, user_id, c)
    ]
    return result


async def update_board(board_id: str, user_id: str, fields: dict) -> dict:
    db = get_db()
    board, _, _ = await board_context(board_id, user_id, BoardCapability.EDIT)
    changes = {k: getattr(v, "value", v) for k, v in fields.items() if v is not None}
    changes["updated_at"] = utc_now()
    doc = await db.boards.find_one_and_update(
        {"_id": board["_id"]}, {"$set": changes}, return_document=True,
    )
    await log_activity(user_id, "board_updated", "board", board_id, doc["name"],
                       workspace_id=doc["workspace_id"], board_id=board_id)
    return serialize_doc(doc)


async def delete_board(board_id: str, user_id: str) -> None:
    db = get_db()
    board, space, workspace = await board_context(board_id, user_id, BoardCapability.DELETE)
    task_ids = [str(t["_id"]) async for t in db.tasks.find({"board_id": board_id}, {"_id": 1})]
    space["boards"] = [b for b in space.get("boards", []) if b != board_id]

    async with transaction() as session:
        await db.checklists.delete_many({"task_id": {"$in": task_ids}}, session=session)
        await db.comments.delete_many({"task_id": {"$in": task_ids}}, session=session)
        await db.tasks.delete_many({"board_id": board_id}, session=session)
        await db.columns.delete_many({"board_id": board_id}, session=session)
        await db.boards.delete_one({"_id": board["_id"]}, session=session)
        await save_space(space, session=session)
        await db.workspaces.update_one(
            {"_id": workspace["_id"]},
            {"$inc": {"usage.boards_count": -1, "usage.tasks_count": -len(task_ids)}},
            session=session,
        )
        await roles_service.purge_entity("boards", board_id, session=session)

    logger.info("Board %s deleted by %s (%d tasks)", board_id, user_id, len(task_ids))


async def add_member(board_id: str, actor_id: str, user_id: str, capabilities: List[str]) -> dict:
    board, _, workspace = await board_context(board_id, actor_id, BoardCapability.MANAGE_MEMBERS)
    if workspace_membership.role_of(workspace, user_id) is None:
        raise ValidationError("User must be a workspace member first")

    member = membership.add_member(board, user_id, capabilities)
    async with transaction() as session:
        await save_board_members(board, session=session)
        await roles_service.set_board_role(user_id, board_id, member["permissions"], session=session)
    return serialize_doc(member)


async def update_member(board_id: str, actor_id: str, user_id: str, capabilities: List[str]) -> dict:
    board, _, _ = await board_context(board_id, actor_id, BoardCapability.MANAGE_MEMBERS)
    member = membership.update_member(board, user_id, capabilities)
    async with transaction() as session:
        await save_board_members(board, session=session)
        await roles_service.set_board_role(user_id, board_id, member["permissions"], session=session)
    return serialize_doc(member)


async def remove_member(board_id: str, actor_id: str, user_id: str) -> None:
    if actor_id == user_id:
        board = await load_board(board_id)
    else:
        board, _, _ = await board_context(board_id, actor_id, BoardCapability.MANAGE_MEMBERS)
    membership.remove_member(board, user_id)
    async with transaction() as session:
        await save_board_members(board, session=session)
        await roles_service.remove_board_role(user_id, board_id, session=session)
