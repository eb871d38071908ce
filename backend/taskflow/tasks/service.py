"""Task service: lifecycle, column placement, watchers, dependencies, time."""

import logging
import re
from typing import Dict, List, Optional, Set, Tuple

from bson import ObjectId

from taskflow.activity.service import entity_history, log_activity
from taskflow.boards import positions
from taskflow.boards.service import allowed, board_columns, board_context
from taskflow.columns import service as columns_service
from taskflow.database import get_db, transaction
from taskflow.notifications.schemas import NotificationType
from taskflow.notifications.service import notify_many
from taskflow.permissions.roles import BoardCapability
from taskflow.realtime.manager import emit_board_event
from taskflow.spaces import membership as space_membership
from taskflow.tasks import graph
from taskflow.utils.errors import NotFoundError, PermissionDenied, ValidationError
from taskflow.utils.helpers import as_utc, serialize_doc, to_object_id, utc_now

logger = logging.getLogger(__name__)

DONE = "done"


async def load_task(task_id: str, session=None) -> dict:
    db = get_db()
    doc = await db.tasks.find_one({"_id": to_object_id(task_id, "Task")}, session=session)
    if doc is None:
        raise NotFoundError("Task not found")
    return doc


def _require_task_action(board: dict, space: dict, workspace: dict, user_id: str, action: str):
    """``action`` is one of create, edit, delete."""
    capability = BoardCapability.DELETE if action == "delete" else BoardCapability.EDIT
    if allowed(board, space, workspace, user_id, capability):
        return
    if not allowed(board, space, workspace, user_id, BoardCapability.VIEW):
        raise PermissionDenied("You do not have permission for this board")
    perms = space_membership.effective_permissions(space, workspace, user_id)
    if not perms.get(f"can_{action}_tasks"):
        raise PermissionDenied(f"You cannot {action} tasks on this board")


async def task_context(task_id: str, user_id: str, action: Optional[str] = None):
    task = await load_task(task_id)
    board, space, workspace = await board_context(task["board_id"], user_id)
    if action:
        _require_task_action(board, space, workspace, user_id, action)
    return task, board, space, workspace


def _status_for(column: dict, fallback: str = "todo") -> str:
    return column.get("status_mapping") or fallback


def _present(task: dict, position: Optional[int] = None) -> dict:
    result = serialize_doc(task)
    due = as_utc(task.get("due_date"))
    result["is_overdue"] = bool(due and due < utc_now() and task.get("status") != DONE)
    if position is not None:
        result["position"] = position
    return result


async def create_task(board_id: str, user_id: str, data: dict) -> dict:
    db = get_db()
    board, space, workspace = await board_context(board_id, user_id)
    _require_task_action(board, space, workspace, user_id, "create")

    if data.get("column_id"):
        column = await columns_service.load_column(data["column_id"])
        if column["board_id"] != board_id:
            raise ValidationError("Column does not belong to this board")
    else:
        columns = await board_columns(board_id)
        if not columns:
            raise ValidationError("Board has no columns")
        column = columns[0]

    now = utc_now()
    assignees = list(dict.fromkeys(data.get("assignees") or []))
    status = _status_for(column)
    doc = {
        "_id": ObjectId(),
        "title": data["title"],
        "description": data.get("description") or "",
        "board_id": board_id,
        "space_id": board["space_id"],
        "workspace_id": board["workspace_id"],
        "column_id": str(column["_id"]),
        "status": status,
        "priority": getattr(data.get("priority"), "value", data.get("priority")) or "medium",
        "assignees": assignees,
        "reporter_id": user_id,
        "watchers": list(dict.fromkeys([user_id] + assignees)),
        "tags": data.get("tags") or [],
        "due_date": data.get("due_date"),
        "estimated_hours": data.get("estimated_hours"),
        "actual_hours": 0,
        "time_entries": [],
        "dependencies": [],
        "completed_at": now if status == DONE else None,
        "moved_at": None,
        "created_at": now,
        "updated_at": now,
    }
    task_id = str(doc["_id"])
    columns_service.add_task(column, task_id, data.get("position"))

    async with transaction() as session:
        await db.tasks.insert_one(doc, session=session)
        await columns_service.save_column_tasks(column, session=session)
        await db.workspaces.update_one(
            {"_id": workspace["_id"]}, {"$inc": {"usage.tasks_count": 1}}, session=session
        )
        await db.spaces.update_one(
            {"_id": space["_id"]},
            {"$inc": {"stats.total_tasks": 1}, "$set": {"stats.last_activity_at": now}},
            session=session,
        )

    position = positions.index_of(column["task_ids"], task_id, "task_id")
    task = _present(doc, position)
    await notify_many(
        assignees, sender_id=user_id, type=NotificationType.TASK_ASSIGNED,
        title="New task assigned", message=f'You were assigned "{doc["title"]}"',
        related_type="task", related_id=task_id,
    )
    await log_activity(user_id, "task_created", "task", task_id, doc["title"],
                       workspace_id=board["workspace_id"], board_id=board_id)
    await emit_board_event(board_id, "task:created", task)
    return task


async def get_task(task_id: str, user_id: str) -> dict:
    task, _, _, _ = await task_context(task_id, user_id)
    column = await columns_service.load_column(task["column_id"])
    try:
        position = positions.index_of(column.get("task_ids", []), task_id, "task_id")
    except NotFoundError:
        position = None
    return _present(task, position)


async def list_tasks(board_id: str, user_id: str, filters: dict) -> List[dict]:
    db = get_db()
    await board_context(board_id, user_id)

    query = {"board_id": board_id}
    if filters.get("column_id"):
        query["column_id"] = filters["column_id"]
    if filters.get("assignee"):
        query["assignees"] = filters["assignee"]
    if filters.get("priority"):
        query["priority"] = getattr(filters["priority"], "value", filters["priority"])
    if filters.get("status"):
        query["status"] = filters["status"]
    if filters.get("tag"):
        query["tags"] = filters["tag"]
    if filters.get("search"):
        query["title"] = {"$regex": re.escape(filters["search"]), "$options": "i"}

    order: Dict[str, Tuple[int, int]] = {}
    for column in await board_columns(board_id):
        for entry in column.get("task_ids", []):
            order[entry["task_id"]] = (column["position"], entry["position"])

    tasks = [doc async for doc in db.tasks.find(query)]
    tasks.sort(key=lambda t: order.get(str(t["_id"]), (1 << 30, 0)))
    return [_present(t, order.get(str(t["_id"]), (None, None))[1]) for t in tasks]


async def update_task(task_id: str, user_id: str, fields: dict) -> dict:
    db = get_db()
    task, board, _, _ = await task_context(task_id, user_id, "edit")

    changes = {k: getattr(v, "value", v) for k, v in fields.items() if v is not None}
    if not changes:
        raise ValidationError("Nothing to update")
    new_assignees = []
    if "assignees" in changes:
        changes["assignees"] = list(dict.fromkeys(changes["assignees"]))
        new_assignees = [a for a in changes["assignees"] if a not in task.get("assignees", [])]
    changes["updated_at"] = utc_now()

    update = {"$set": changes}
    if new_assignees:
        update["$addToSet"] = {"watchers": {"$each": new_assignees}}
    doc = await db.tasks.find_one_and_update({"_id": task["_id"]}, update, return_document=True)

    await notify_many(
        new_assignees, sender_id=user_id, type=NotificationType.TASK_ASSIGNED,
        title="New task assigned", message=f'You were assigned "{doc["title"]}"',
        related_type="task", related_id=task_id,
    )
    await notify_many(
        [w for w in doc.get("watchers", []) if w not in new_assignees], sender_id=user_id,
        type=NotificationType.TASK_UPDATED, title="Task updated",
        message=f'"{doc["title"]}" was updated', related_type="task", related_id=task_id,
    )
    await log_activity(user_id, "task_updated", "task", task_id, doc["title"],
                       workspace_id=board["workspace_id"], board_id=task["board_id"],
                       metadata={"fields": sorted(k for k in changes if k != "updated_at")})
    result = _present(doc)
    await emit_board_event(task["board_id"], "task:updated", result)
    return result


async def move_task(task_id: str, user_id: str, column_id: str, position: int = 0) -> dict:
    db = get_db()
    task, board, _, _ = await task_context(task_id, user_id, "edit")
    source = await columns_service.load_column(task["column_id"])
    if column_id == task["column_id"]:
        target = source
    else:
        target = await columns_service.load_column(column_id)
        if target["board_id"] != task["board_id"]:
            raise ValidationError("Tasks can only move between columns of the same board")

    now = utc_now()
    changes = {"moved_at": now, "updated_at": now}
    async with transaction() as session:
        if target is source:
            present = any(e["task_id"] == task_id for e in source.get("task_ids", []))
            if present:
                source["task_ids"] = positions.move(source["task_ids"], task_id, position)
            else:
                columns_service.add_task(source, task_id, position)
            await columns_service.save_column_tasks(source, session=session)
        else:
            if any(e["task_id"] == task_id for e in source.get("task_ids", [])):
                columns_service.remove_task(source, task_id)
            columns_service.add_task(target, task_id, position)
            await columns_service.save_column_tasks(source, session=session)
            await columns_service.save_column_tasks(target, session=session)

            status = _status_for(target, task.get("status", "todo"))
            changes.update({"column_id": column_id, "status": status})
            if status == DONE and task.get("status") != DONE:
                changes["completed_at"] = now
            elif status != DONE:
                changes["completed_at"] = None
        await db.tasks.update_one({"_id": task["_id"]}, {"$set": changes}, session=session)

    task.update(changes)
    new_position = positions.index_of(target["task_ids"], task_id, "task_id")
    if changes.get("completed_at") and task.get("status") == DONE:
        await notify_many(
            task.get("watchers", []), sender_id=user_id, type=NotificationType.TASK_COMPLETED,
            title="Task completed", message=f'"{task["title"]}" was completed',
            related_type="task", related_id=task_id,
        )
    await log_activity(user_id, "task_moved", "task", task_id, task["title"],
                       workspace_id=board["workspace_id"], board_id=task["board_id"],
                       metadata={"from": str(source["_id"]), "to": column_id, "position": new_position})
    await emit_board_event(task["board_id"], "task:moved", {
        "task_id": task_id,
        "from_column": str(source["_id"]),
        "to_column": column_id,
        "position": new_position,
    })
    return _present(task, new_position)


async def delete_task(task_id: str, user_id: str) -> None:
    db = get_db()
    task, board, space, workspace = await task_context(task_id, user_id, "delete")
    column = await columns_service.load_column(task["column_id"])

    async with transaction() as session:
        if any(e["task_id"] == task_id for e in column.get("task_ids", [])):
            columns_service.remove_task(column, task_id)
            await columns_service.save_column_tasks(column, session=session)
        await db.checklists.delete_many({"task_id": task_id}, session=session)
        await db.comments.delete_many({"task_id": task_id}, session=session)
        await db.tasks.update_many(
            {"dependencies.task_id": task_id},
            {"$pull": {"dependencies": {"task_id": task_id}}},
            session=session,
        )
        await db.tasks.delete_one({"_id": task["_id"]}, session=session)
        await db.workspaces.update_one(
            {"_id": workspace["_id"]}, {"$inc": {"usage.tasks_count": -1}}, session=session
        )
        await db.spaces.update_one(
            {"_id": space["_id"]}, {"$inc": {"stats.total_tasks": -1}}, session=session
        )

    await log_activity(user_id, "task_deleted", "task", task_id, task["title"],
                       workspace_id=board["workspace_id"], board_id=task["board_id"])
    await emit_board_event(task["board_id"], "task:deleted", {"id": task_id})


async def add_watcher(task_id: str, user_id: str, watcher_id: str) -> dict:
    db = get_db()
    task, board, space, workspace = await task_context(task_id, user_id)
    if watcher_id != user_id:
        _require_task_action(board, space, workspace, user_id, "edit")
    if not allowed(board, space, workspace, watcher_id, BoardCapability.VIEW):
        raise ValidationError("Watcher cannot view this board")
    doc = await db.tasks.find_one_and_update(
        {"_id": task["_id"]}, {"$addToSet": {"watchers": watcher_id}}, return_document=True,
    )
    return _present(doc)


async def remove_watcher(task_id: str, user_id: str, watcher_id: str) -> dict:
    db = get_db()
    task, board, space, workspace = await task_context(task_id, user_id)
    if watcher_id != user_id:
        _require_task_action(board, space, workspace, user_id, "edit")
    doc = await db.tasks.find_one_and_update(
        {"_id": task["_id"]}, {"$pull": {"watchers": watcher_id}}, return_document=True,
    )
    return _present(doc)


async def _precedence_graph(start: str) -> Dict[str, Set[str]]:
    """Load the part of the precedence graph reachable from ``start``."""
    db = get_db()
    docs: Dict[str, dict] = {}
    visited = {start}
    frontier = [start]
    edges: Dict[str, Set[str]] = {}
    while frontier:
        oids = [ObjectId(t) for t in frontier if ObjectId.is_valid(t)]
        cursor = db.tasks.find(
            {"$or": [{"_id": {"$in": oids}}, {"dependencies.task_id": {"$in": frontier}}]},
            {"dependencies": 1},
        )
        async for doc in cursor:
            docs[str(doc["_id"])] = doc
        edges = graph.precedence_edges(docs.values())
        frontier = []
        for node in list(visited):
            for nxt in edges.get(node, ()):
                if nxt not in visited:
                    visited.add(nxt)
                    frontier.append(nxt)
    return edges


async def add_dependency(task_id: str, user_id: str, depends_on: str, dep_type: str) -> dict:
    db = get_db()
    dep_type = getattr(dep_type, "value", dep_type)
    if dep_type not in graph.DEPENDENCY_TYPES:
        raise ValidationError(f"Unknown dependency type: {dep_type}")
    if depends_on == task_id:
        raise ValidationError("A task cannot depend on itself")

    task, board, _, _ = await task_context(task_id, user_id, "edit")
    other = await load_task(depends_on)
    if other.get("workspace_id") != task.get("workspace_id"):
        raise ValidationError("Dependencies must stay within one workspace")
    if any(d["task_id"] == depends_on for d in task.get("dependencies", [])):
        raise ValidationError("Dependency already exists")

    edge = graph.edge_for(task_id, depends_on, dep_type)
    if edge is not None:
        before, after = edge
        if graph.would_create_cycle(await _precedence_graph(after), before, after):
            raise ValidationError("Circular dependency detected")

    entry = {"task_id": depends_on, "type": dep_type, "created_at": utc_now(), "created_by": user_id}
    doc = await db.tasks.find_one_and_update(
        {"_id": task["_id"], "dependencies.task_id": {"$ne": depends_on}},
        {"$push": {"dependencies": entry}, "$set": {"updated_at": utc_now()}},
        return_document=True,
    )
    if doc is None:
        raise ValidationError("Dependency already exists")

    await log_activity(user_id, "dependency_added", "task", task_id, task["title"],
                       workspace_id=board["workspace_id"], board_id=task["board_id"],
                       metadata={"task_id": depends_on, "type": dep_type})
    result = _present(doc)
    await emit_board_event(task["board_id"], "task:updated", result)
    return result


async def remove_dependency(task_id: str, user_id: str, depends_on: str) -> dict:
    db = get_db()
    task, _, _, _ = await task_context(task_id, user_id, "edit")
    doc = await db.tasks.find_one_and_update(
        {"_id": task["_id"], "dependencies.task_id": depends_on},
        {"$pull": {"dependencies": {"task_id": depends_on}}, "$set": {"updated_at": utc_now()}},
        return_document=True,
    )
    if doc is None:
        raise NotFoundError("Dependency not found")
    result = _present(doc)
    await emit_board_event(task["board_id"], "task:updated", result)
    return result


async def start_time_tracking(task_id: str, user_id: str) -> dict:
    db = get_db()
    task, _, _, _ = await task_context(task_id, user_id, "edit")
    entry = {"user_id": user_id, "started_at": utc_now(), "ended_at": None, "duration_minutes": None}
    doc = await db.tasks.find_one_and_update(
        {
            "_id": task["_id"],
            "time_entries": {"$not": {"$elemMatch": {"user_id": user_id, "ended_at": None}}},
        },
        {"$push": {"time_entries": entry}},
        return_document=True,
    )
    if doc is None:
        raise ValidationError("Time tracking already running for this task")
    return _present(doc)


async def stop_time_tracking(task_id: str, user_id: str) -> dict:
    db = get_db()
    task, _, _, _ = await task_context(task_id, user_id, "edit")
    running = next(
        (e for e in task.get("time_entries", []) if e["user_id"] == user_id and e.get("ended_at") is None),
        None,
    )
    if running is None:
        raise ValidationError("No running time entry for this task")

    now = utc_now()
    minutes = round((now - as_utc(running["started_at"])).total_seconds() / 60, 2)
    doc = await db.tasks.find_one_and_update(
        {"_id": task["_id"], "time_entries": {"$elemMatch": {"user_id": user_id, "ended_at": None}}},
        {
            "$set": {"time_entries.$.ended_at": now, "time_entries.$.duration_minutes": minutes},
            "$inc": {"actual_hours": round(minutes / 60, 2)},
        },
        return_document=True,
    )
    if doc is None:
        raise ValidationError("No running time entry for this task")
    return _present(doc)


async def list_overdue(user_id: str) -> List[dict]:
    db = get_db()
    cursor = db.tasks.find({
        "assignees": user_id,
        "due_date": {"$lt": utc_now()},
        "status": {"$ne": DONE},
    }).sort("due_date", 1)
    return [_present(doc) async for doc in cursor]


async def task_history(task_id: str, user_id: str) -> List[dict]:
    await task_context(task_id, user_id)
    return await entity_history("task", task_id)
