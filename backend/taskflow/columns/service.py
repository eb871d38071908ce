"""Columns of a board and the ordered task lists they hold.

Both the board's columns and each column's ``task_ids`` keep dense
positions ``0..n-1``; see ``taskflow.boards.positions``.
"""

import logging
from typing import List, Optional

from bson import ObjectId

from taskflow.boards import positions
from taskflow.boards.service import board_columns, board_context
from taskflow.database import get_db, transaction
from taskflow.permissions.roles import BoardCapability
from taskflow.realtime.manager import emit_board_event
from taskflow.utils.errors import ConflictError, NotFoundError, ValidationError
from taskflow.utils.helpers import serialize_doc, to_object_id, utc_now

logger = logging.getLogger(__name__)


async def load_column(column_id: str, session=None) -> dict:
    db = get_db()
    doc = await db.columns.find_one({"_id": to_object_id(column_id, "Column")}, session=session)
    if doc is None:
        raise NotFoundError("Column not found")
    return doc


async def save_column_tasks(column: dict, session=None) -> dict:
    db = get_db()
    version = column.get("version", 0)
    task_ids = column.get("task_ids", [])
    result = await db.columns.update_one(
        {"_id": column["_id"], "version": version},
        {"$set": {
            "task_ids": task_ids,
            "stats.total_tasks": len(task_ids),
            "updated_at": utc_now(),
            "version": version + 1,
        }},
        session=session,
    )
    if result.matched_count == 0:
        raise ConflictError("Column was modified by another request, please retry")
    column["version"] = version + 1
    column.setdefault("stats", {})["total_tasks"] = len(task_ids)
    return column


async def _write_positions(ordered: List[dict], session=None):
    db = get_db()
    for entry in ordered:
        await db.columns.update_one(
            {"_id": entry["_id"]},
            {"$set": {"position": entry["position"], "updated_at": utc_now()}},
            session=session,
        )


def check_wip(column: dict) -> None:
    wip = column.get("settings", {}).get("wip_limit") or {}
    if not (wip.get("enabled") and wip.get("strict_mode") and wip.get("limit")):
        return
    if len(column.get("task_ids", [])) >= wip["limit"]:
        raise ValidationError(f'Column "{column["name"]}" has reached its WIP limit of {wip["limit"]}')


def wip_status(column: dict) -> dict:
    wip = column.get("settings", {}).get("wip_limit") or {}
    count = len(column.get("task_ids", []))
    limit = wip.get("limit") if wip.get("enabled") else None
    return {
        "count": count,
        "limit": limit,
        "utilization": round(count / limit * 100, 1) if limit else None,
        "over_limit": bool(limit and count > limit),
    }


def add_task(column: dict, task_id: str, position: Optional[int] = None) -> dict:
    """Place a task in the column, shifting later entries down."""
    present = any(e["task_id"] == task_id for e in column.get("task_ids", []))
    if not present:
        check_wip(column)
    entry = {"task_id": task_id, "added_at": utc_now()}
    column["task_ids"] = positions.insert_at(column.get("task_ids", []), entry, position)
    return column


def remove_task(column: dict, task_id: str) -> dict:
    column["task_ids"] = positions.remove(column.get("task_ids", []), task_id)
    return column


async def create_column(board_id: str, user_id: str, data: dict) -> dict:
    db = get_db()
    await board_context(board_id, user_id, BoardCapability.MANAGE_COLUMNS)
    existing = await board_columns(board_id)

    now = utc_now()
    doc = {
        "_id": ObjectId(),
        "name": data["name"],
        "board_id": board_id,
        "task_ids": [],
        "settings": {"wip_limit": dict(data.get("wip_limit") or {})},
        "status_mapping": getattr(data.get("status_mapping"), "value", data.get("status_mapping")),
        "color": data.get("color") or "#6B7280",
        "is_default": False,
        "stats": {"total_tasks": 0},
        "version": 0,
        "created_by": user_id,
        "created_at": now,
        "updated_at": now,
    }
    ordered = positions.insert_at(existing, doc, data.get("position"), key="_id")
    doc["position"] = next(c["position"] for c in ordered if c["_id"] == doc["_id"])

    async with transaction() as session:
        await _write_positions([c for c in ordered if c["_id"] != doc["_id"]], session=session)
        await db.columns.insert_one(doc, session=session)

    column = serialize_doc(doc)
    await emit_board_event(board_id, "column:created", column)
    return column


async def update_column(column_id: str, user_id: str, fields: dict) -> dict:
    db = get_db()
    column = await load_column(column_id)
    await board_context(column["board_id"], user_id, BoardCapability.MANAGE_COLUMNS)

    changes = {}
    for key in ("name", "color", "status_mapping"):
        if fields.get(key) is not None:
            changes[key] = getattr(fields[key], "value", fields[key])
    if fields.get("wip_limit") is not None:
        changes["settings.wip_limit"] = dict(fields["wip_limit"])
    changes["updated_at"] = utc_now()

    doc = await db.columns.find_one_and_update(
        {"_id": column["_id"]}, {"$set": changes}, return_document=True,
    )
    result = serialize_doc(doc)
    await emit_board_event(column["board_id"], "column:updated", result)
    return result


async def delete_column(column_id: str, user_id: str) -> None:
    db = get_db()
    column = await load_column(column_id)
    board_id = column["board_id"]
    await board_context(board_id, user_id, BoardCapability.MANAGE_COLUMNS)
    if column.get("task_ids"):
        raise ValidationError("Cannot delete a column that still has tasks; move or delete them first")

    remaining = positions.remove(await board_columns(board_id), column["_id"], key="_id")
    async with transaction() as session:
        result = await db.columns.delete_one({"_id": column["_id"], "task_ids": {"$size": 0}}, session=session)
        if result.deleted_count == 0:
            raise ConflictError("Column received tasks while being deleted, please retry")
        await _write_positions(remaining, session=session)
    logger.info("Deleted column %s from board %s", column_id, board_id)
    await emit_board_event(board_id, "column:deleted", {"id": column_id})


async def reorder_columns(board_id: str, user_id: str, ordered_ids: List[str]) -> List[dict]:
    await board_context(board_id, user_id, BoardCapability.MANAGE_COLUMNS)
    columns = await board_columns(board_id)
    entries = [{**c, "column_id": str(c["_id"])} for c in columns]
    ordered = positions.reorder(entries, ordered_ids, key="column_id")

    async with transaction() as session:
        await _write_positions(ordered, session=session)

    result = [serialize_doc({k: v for k, v in c.items() if k != "column_id"}) for c in ordered]
    await emit_board_event(board_id, "columns:reordered", {"columns": [
        {"id": c["id"], "position": c["position"]} for c in result
    ]})
    return result


async def reorder_column_tasks(column_id: str, user_id: str, ordered_ids: List[str]) -> dict:
    column = await load_column(column_id)
    await board_context(column["board_id"], user_id, BoardCapability.EDIT)
    column["task_ids"] = positions.reorder(column.get("task_ids", []), ordered_ids)
    await save_column_tasks(column)

    result = serialize_doc(column)
    await emit_board_event(column["board_id"], "column:updated", result)
    return result
