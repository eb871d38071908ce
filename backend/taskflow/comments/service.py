"""Task comments: threads, reactions, pin and resolve flags."""

from typing import List

from taskflow.boards.service import allowed
from taskflow.database import get_db
from taskflow.notifications.schemas import NotificationType
from taskflow.notifications.service import notify_many
from taskflow.permissions.roles import BoardCapability
from taskflow.realtime.manager import emit_board_event
from taskflow.tasks.service import task_context
from taskflow.utils.errors import NotFoundError, PermissionDenied, ValidationError
from taskflow.utils.helpers import serialize_doc, to_object_id, utc_now


async def _load(comment_id: str) -> dict:
    db = get_db()
    doc = await db.comments.find_one({"_id": to_object_id(comment_id, "Comment")})
    if doc is None:
        raise NotFoundError("Comment not found")
    return doc


async def add_comment(task_id: str, user_id: str, data: dict) -> dict:
    db = get_db()
    task, board, space, workspace = await task_context(task_id, user_id)
    if not board.get("settings", {}).get("allow_comments", True):
        raise ValidationError("Comments are disabled on this board")

    parent_id = data.get("parent_id")
    if parent_id:
        parent = await _load(parent_id)
        if parent["task_id"] != task_id:
            raise ValidationError("Parent comment belongs to another task")

    mentions = [m for m in dict.fromkeys(data.get("mentions") or [])
                if allowed(board, space, workspace, m, BoardCapability.VIEW)]
    now = utc_now()
    doc = {
        "task_id": task_id,
        "board_id": task["board_id"],
        "author_id": user_id,
        "content": data["content"],
        "parent_id": parent_id,
        "mentions": mentions,
        "reactions": [],
        "is_edited": False,
        "edited_at": None,
        "is_pinned": False,
        "is_resolved": False,
        "created_at": now,
        "updated_at": now,
    }
    result = await db.comments.insert_one(doc)
    doc["_id"] = result.inserted_id
    await db.tasks.update_one({"_id": task["_id"]}, {"$addToSet": {"watchers": user_id}})

    await notify_many(
        mentions, sender_id=user_id, type=NotificationType.COMMENT_MENTIONED,
        title="You were mentioned", message=f'You were mentioned on "{task["title"]}"',
        related_type="task", related_id=task_id,
    )
    await notify_many(
        [w for w in task.get("watchers", []) if w not in mentions], sender_id=user_id,
        type=NotificationType.COMMENT_ADDED, title="New comment",
        message=f'New comment on "{task["title"]}"', related_type="task", related_id=task_id,
    )
    comment = serialize_doc(doc)
    await emit_board_event(task["board_id"], "comment:added", comment)
    return comment


async def list_comments(task_id: str, user_id: str) -> List[dict]:
    db = get_db()
    await task_context(task_id, user_id)
    cursor = db.comments.find({"task_id": task_id}).sort([("is_pinned", -1), ("created_at", 1)])
    return [serialize_doc(doc) async for doc in cursor]


async def edit_comment(comment_id: str, user_id: str, content: str) -> dict:
    db = get_db()
    comment = await _load(comment_id)
    if comment["author_id"] != user_id:
        raise PermissionDenied("Only the author can edit this comment")
    doc = await db.comments.find_one_and_update(
        {"_id": comment["_id"]},
        {"$set": {"content": content, "is_edited": True, "edited_at": utc_now(), "updated_at": utc_now()}},
        return_document=True,
    )
    return serialize_doc(doc)


async def delete_comment(comment_id: str, user_id: str) -> None:
    db = get_db()
    comment = await _load(comment_id)
    if comment["author_id"] != user_id:
        _, board, space, workspace = await task_context(comment["task_id"], user_id)
        if not allowed(board, space, workspace, user_id, BoardCapability.MANAGE_MEMBERS):
            raise PermissionDenied("You cannot delete this comment")
    await db.comments.delete_many({"parent_id": comment_id})
    await db.comments.delete_one({"_id": comment["_id"]})


async def add_reaction(comment_id: str, user_id: str, emoji: str) -> dict:
    db = get_db()
    comment = await _load(comment_id)
    await task_context(comment["task_id"], user_id)
    doc = await db.comments.find_one_and_update(
        {"_id": comment["_id"]},
        {"$addToSet": {"reactions": {"user_id": user_id, "emoji": emoji}}},
        return_document=True,
    )
    return serialize_doc(doc)


async def remove_reaction(comment_id: str, user_id: str, emoji: str) -> dict:
    db = get_db()
    comment = await _load(comment_id)
    doc = await db.comments.find_one_and_update(
        {"_id": comment["_id"]},
        {"$pull": {"reactions": {"user_id": user_id, "emoji": emoji}}},
        return_document=True,
    )
    return serialize_doc(doc)


async def _toggle(comment_id: str, user_id: str, flag: str, by_field: str) -> dict:
    db = get_db()
    comment = await _load(comment_id)
    await task_context(comment["task_id"], user_id, "edit")
    value = not comment.get(flag, False)
    doc = await db.comments.find_one_and_update(
        {"_id": comment["_id"]},
        {"$set": {flag: value, by_field: user_id if value else None, "updated_at": utc_now()}},
        return_document=True,
    )
    return serialize_doc(doc)


async def toggle_pin(comment_id: str, user_id: str) -> dict:
    return await _toggle(comment_id, user_id, "is_pinned", "pinned_by")


async def toggle_resolve(comment_id: str, user_id: str) -> dict:
    return await _toggle(comment_id, user_id, "is_resolved", "resolved_by")
