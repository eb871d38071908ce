"""Read-only rollups over workspaces, boards and a user's own work."""

from datetime import timedelta
from typing import Dict, List

from taskflow.boards.service import board_columns, board_context
from taskflow.columns.service import wip_status
from taskflow.database import get_db
from taskflow.permissions.roles import WorkspaceRole
from taskflow.utils.helpers import utc_now
from taskflow.workspaces import membership
from taskflow.workspaces.service import load_workspace, require_role

DONE = "done"


def completion_rate(completed: int, total: int) -> float:
    return round(completed * 100.0 / total, 1) if total else 0.0


async def _count_by(collection, match: dict, field: str) -> Dict[str, int]:
    counts = {}
    async for row in collection.aggregate([
        {"$match": match},
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
    ]):
        counts[str(row["_id"])] = row["count"]
    return counts


async def _task_totals(match: dict) -> dict:
    db = get_db()
    total = await db.tasks.count_documents(match)
    completed = await db.tasks.count_documents({**match, "status": DONE})
    overdue = await db.tasks.count_documents(
        {**match, "status": {"$ne": DONE}, "due_date": {"$lt": utc_now()}}
    )
    return {
        "total": total,
        "completed": completed,
        "overdue": overdue,
        "completion_rate": completion_rate(completed, total),
    }


async def workspace_analytics(workspace_id: str, user_id: str, timeframe_days: int = 30) -> dict:
    db = get_db()
    workspace = await load_workspace(workspace_id)
    require_role(workspace, user_id, WorkspaceRole.ADMIN)
    since = utc_now() - timedelta(days=timeframe_days)

    tasks = await _task_totals({"workspace_id": workspace_id})
    tasks["created_in_timeframe"] = await db.tasks.count_documents(
        {"workspace_id": workspace_id, "created_at": {"$gte": since}}
    )
    tasks["by_priority"] = await _count_by(db.tasks, {"workspace_id": workspace_id}, "priority")

    activity = await _count_by(
        db.activity_logs, {"workspace_id": workspace_id, "created_at": {"$gte": since}}, "user_id"
    )
    member_ids = [workspace["owner_id"]] + [m["user_id"] for m in workspace.get("members", [])]
    member_activity = sorted(
        ({"user_id": uid, "role": membership.role_of(workspace, uid), "actions": activity.get(uid, 0)}
         for uid in member_ids),
        key=lambda row: row["actions"],
        reverse=True,
    )

    usage = workspace.get("usage", {})
    limits = workspace.get("limits") or membership.default_limits()
    return {
        "workspace_id": workspace_id,
        "timeframe_days": timeframe_days,
        "spaces": await db.spaces.count_documents({"workspace_id": workspace_id}),
        "boards": await db.boards.count_documents({"workspace_id": workspace_id}),
        "tasks": tasks,
        "member_activity": member_activity,
        "usage": {
            "members": {"used": usage.get("members_count", 0), "limit": limits.get("max_members")},
            "spaces": {"used": usage.get("spaces_count", 0), "limit": limits.get("max_spaces")},
            "boards": {"used": usage.get("boards_count", 0), "limit": limits.get("max_boards")},
        },
    }


async def board_analytics(board_id: str, user_id: str) -> dict:
    await board_context(board_id, user_id)
    columns: List[dict] = []
    for column in await board_columns(board_id):
        columns.append({
            "id": str(column["_id"]),
            "name": column["name"],
            "task_count": len(column.get("task_ids", [])),
            "wip": wip_status(column),
        })
    return {
        "board_id": board_id,
        "columns": columns,
        "tasks": await _task_totals({"board_id": board_id}),
    }


async def user_analytics(user_id: str, days: int = 30) -> dict:
    db = get_db()
    since = utc_now() - timedelta(days=days)
    assigned = await db.tasks.count_documents({"assignees": user_id})
    completed = await db.tasks.count_documents({"assignees": user_id, "status": DONE})
    completed_recently = await db.tasks.count_documents(
        {"assignees": user_id, "status": DONE, "completed_at": {"$gte": since}}
    )

    trend = []
    async for row in db.activity_logs.aggregate([
        {"$match": {"user_id": user_id, "created_at": {"$gte": since}}},
        {"$group": {
            "_id": {"$dateToString": {"format": "%Y-%m-%d", "date": "$created_at"}},
            "count": {"$sum": 1},
        }},
        {"$sort": {"_id": 1}},
    ]):
        trend.append({"date": row["_id"], "count": row["count"]})

    return {
        "user_id": user_id,
        "days": days,
        "tasks_assigned": assigned,
        "tasks_completed": completed,
        "tasks_completed_in_period": completed_recently,
        "completion_rate": completion_rate(completed, assigned),
        "activity_trend": trend,
    }
