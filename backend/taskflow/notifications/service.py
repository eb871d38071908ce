"""Notifications: persistence plus push to the recipient's live channel."""

import logging
from typing import List, Optional

from taskflow.database import get_db
from taskflow.notifications.schemas import NotificationPriority, NotificationType
from taskflow.realtime.manager import emit_to_user
from taskflow.utils.errors import NotFoundError
from taskflow.utils.helpers import serialize_doc, to_object_id, utc_now

logger = logging.getLogger(__name__)


async def create_notification(
    recipient_id: str,
    type: NotificationType,
    title: str,
    message: str,
    sender_id: Optional[str] = None,
    related_type: Optional[str] = None,
    related_id: Optional[str] = None,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    session=None,
) -> dict:
    db = get_db()
    doc = {
        "recipient_id": recipient_id,
        "sender_id": sender_id,
        "type": NotificationType(type).value,
        "title": title,
        "message": message,
        "related_entity": {"type": related_type, "id": related_id} if related_id else None,
        "priority": NotificationPriority(priority).value,
        "is_read": False,
        "read_at": None,
        "created_at": utc_now(),
    }
    result = await db.notifications.insert_one(doc, session=session)
    doc["_id"] = result.inserted_id
    notification = serialize_doc(doc)
    await emit_to_user(recipient_id, "notification", notification)
    return notification


async def notify_many(recipient_ids, sender_id: Optional[str] = None, **kwargs) -> int:
    """Notify each recipient once, skipping the sender."""
    sent = 0
    for recipient in dict.fromkeys(recipient_ids):
        if not recipient or recipient == sender_id:
            continue
        await create_notification(recipient, sender_id=sender_id, **kwargs)
        sent += 1
    return sent


async def list_notifications(
    user_id: str,
    unread_only: bool = False,
    type: Optional[str] = None,
    limit: int = 20,
    skip: int = 0,
) -> dict:
    db = get_db()
    query = {"recipient_id": user_id}
    if unread_only:
        query["is_read"] = False
    if type:
        query["type"] = getattr(type, "value", type)

    cursor = db.notifications.find(query).sort("created_at", -1).skip(skip).limit(limit)
    items = [serialize_doc(doc) async for doc in cursor]
    total = await db.notifications.count_documents(query)
    unread = await db.notifications.count_documents({"recipient_id": user_id, "is_read": False})
    return {"notifications": items, "total": total, "unread_count": unread}


async def mark_as_read(notification_id: str, user_id: str) -> dict:
    db = get_db()
    doc = await db.notifications.find_one_and_update(
        {"_id": to_object_id(notification_id, "Notification"), "recipient_id": user_id},
        {"$set": {"is_read": True, "read_at": utc_now()}},
        return_document=True,
    )
    if doc is None:
        raise NotFoundError("Notification not found")
    return serialize_doc(doc)


async def mark_all_as_read(user_id: str) -> int:
    db = get_db()
    result = await db.notifications.update_many(
        {"recipient_id": user_id, "is_read": False},
        {"$set": {"is_read": True, "read_at": utc_now()}},
    )
    return result.modified_count


async def delete_notification(notification_id: str, user_id: str) -> None:
    db = get_db()
    result = await db.notifications.delete_one(
        {"_id": to_object_id(notification_id, "Notification"), "recipient_id": user_id}
    )
    if result.deleted_count == 0:
        raise NotFoundError("Notification not found")


async def delete_read(user_id: str) -> int:
    db = get_db()
    result = await db.notifications.delete_many({"recipient_id": user_id, "is_read": True})
    return result.deleted_count


async def notification_stats(user_id: str) -> dict:
    db = get_db()
    pipeline = [
        {"$match": {"recipient_id": user_id}},
        {"$group": {
            "_id": "$type",
            "count": {"$sum": 1},
            "unread": {"$sum": {"$cond": [{"$eq": ["$is_read", False]}, 1, 0]}},
        }},
    ]
    by_type: List[dict] = []
    total = unread = 0
    async for row in db.notifications.aggregate(pipeline):
        by_type.append({"type": row["_id"], "count": row["count"], "unread": row["unread"]})
        total += row["count"]
        unread += row["unread"]
    return {"total": total, "unread": unread, "by_type": by_type}
