"""User reminders and the delivery sweep run by the scheduler."""

import logging
from datetime import timedelta
from typing import List, Optional

from pymongo.errors import PyMongoError

from taskflow.boards.service import board_context
from taskflow.config import settings
from taskflow.database import get_db
from taskflow.notifications.schemas import NotificationType
from taskflow.notifications.service import create_notification
from taskflow.reminders import schedule
from taskflow.reminders.schemas import ReminderEntityType, ReminderStatus
from taskflow.spaces.service import space_context
from taskflow.tasks.service import task_context
from taskflow.utils.errors import NotFoundError, PermissionDenied, ValidationError
from taskflow.utils.helpers import as_utc, serialize_doc, to_object_id, utc_now

logger = logging.getLogger(__name__)

BATCH_SIZE = 100


async def _check_entity(entity_type: str, entity_id: str, user_id: str):
    entity_type = ReminderEntityType(entity_type)
    if entity_type == ReminderEntityType.TASK:
        await task_context(entity_id, user_id)
    elif entity_type == ReminderEntityType.BOARD:
        await board_context(entity_id, user_id)
    elif entity_type == ReminderEntityType.SPACE:
        await space_context(entity_id, user_id)
    elif entity_type == ReminderEntityType.CHECKLIST:
        db = get_db()
        checklist = await db.checklists.find_one({"_id": to_object_id(entity_id, "Checklist")})
        if checklist is None:
            raise NotFoundError("Checklist not found")
        await task_context(checklist["task_id"], user_id)
    elif entity_id != user_id:
        raise PermissionDenied("User reminders can only target yourself")


def _future(value):
    value = as_utc(value)
    if value <= utc_now():
        raise ValidationError("Reminder time must be in the future")
    return value


def _repeat_doc(repeat) -> dict:
    data = repeat.model_dump() if hasattr(repeat, "model_dump") else dict(repeat or {})
    data["frequency"] = getattr(data.get("frequency"), "value", data.get("frequency"))
    return data


async def _load(reminder_id: str, user_id: str) -> dict:
    db = get_db()
    doc = await db.reminders.find_one({"_id": to_object_id(reminder_id, "Reminder"), "user_id": user_id})
    if doc is None:
        raise NotFoundError("Reminder not found")
    return doc


def _require_scheduled(reminder: dict):
    if reminder["status"] != ReminderStatus.SCHEDULED.value:
        raise ValidationError(f"Reminder is {reminder['status']}")


async def create_reminder(user_id: str, data: dict) -> dict:
    db = get_db()
    await _check_entity(data["entity_type"], data["entity_id"], user_id)
    now = utc_now()
    doc = {
        "user_id": user_id,
        "entity_type": ReminderEntityType(data["entity_type"]).value,
        "entity_id": data["entity_id"],
        "title": data["title"],
        "message": data.get("message") or "",
        "scheduled_at": _future(data["scheduled_at"]),
        "repeat": _repeat_doc(data.get("repeat")),
        "status": ReminderStatus.SCHEDULED.value,
        "priority": getattr(data.get("priority"), "value", data.get("priority")) or "medium",
        "snooze": {"count": 0, "max": settings.REMINDER_MAX_SNOOZES},
        "trigger_count": 0,
        "deliveries": [],
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }
    result = await db.reminders.insert_one(doc)
    doc["_id"] = result.inserted_id
    return serialize_doc(doc)


async def list_reminders(user_id: str, status: Optional[str] = None) -> List[dict]:
    db = get_db()
    query = {"user_id": user_id}
    if status:
        query["status"] = ReminderStatus(status).value
    cursor = db.reminders.find(query).sort("scheduled_at", 1)
    return [serialize_doc(doc) async for doc in cursor]


async def update_reminder(reminder_id: str, user_id: str, fields: dict) -> dict:
    db = get_db()
    reminder = await _load(reminder_id, user_id)
    _require_scheduled(reminder)

    changes = {k: v for k, v in fields.items() if v is not None}
    if "scheduled_at" in changes:
        changes["scheduled_at"] = _future(changes["scheduled_at"])
    if "repeat" in changes:
        changes["repeat"] = _repeat_doc(changes["repeat"])
    if "priority" in changes:
        changes["priority"] = getattr(changes["priority"], "value", changes["priority"])
    if not changes:
        return serialize_doc(reminder)
    changes["updated_at"] = utc_now()

    doc = await db.reminders.find_one_and_update(
        {"_id": reminder["_id"], "status": ReminderStatus.SCHEDULED.value},
        {"$set": changes},
        return_document=True,
    )
    if doc is None:
        raise ValidationError("Reminder is no longer scheduled")
    return serialize_doc(doc)


async def cancel_reminder(reminder_id: str, user_id: str) -> dict:
    db = get_db()
    reminder = await _load(reminder_id, user_id)
    _require_scheduled(reminder)
    doc = await db.reminders.find_one_and_update(
        {"_id": reminder["_id"]},
        {"$set": {"status": ReminderStatus.CANCELLED.value, "is_active": False, "updated_at": utc_now()}},
        return_document=True,
    )
    return serialize_doc(doc)


async def delete_reminder(reminder_id: str, user_id: str) -> None:
    db = get_db()
    reminder = await _load(reminder_id, user_id)
    await db.reminders.delete_one({"_id": reminder["_id"]})


async def snooze_reminder(reminder_id: str, user_id: str, minutes: int) -> dict:
    db = get_db()
    reminder = await _load(reminder_id, user_id)
    _require_scheduled(reminder)
    snooze = reminder.get("snooze") or {}
    count = snooze.get("count", 0)
    if count >= snooze.get("max", settings.REMINDER_MAX_SNOOZES):
        raise ValidationError("Maximum snoozes reached for this reminder")

    doc = await db.reminders.find_one_and_update(
        {"_id": reminder["_id"], "status": ReminderStatus.SCHEDULED.value, "snooze.count": count},
        {"$set": {
            "scheduled_at": utc_now() + timedelta(minutes=minutes),
            "snooze.count": count + 1,
            "updated_at": utc_now(),
        }},
        return_document=True,
    )
    if doc is None:
        raise ValidationError("Reminder changed while snoozing, please retry")
    return serialize_doc(doc)


async def _deliver(reminder: dict, now) -> bool:
    """Claim one due reminder and notify its owner.

    The claim is a conditional update on the ``scheduled_at`` we read, so a
    reminder is delivered once even if two sweeps overlap.
    """
    db = get_db()
    trigger_count = reminder.get("trigger_count", 0) + 1
    next_run = schedule.following_run(reminder, trigger_count, now)
    update = {
        "$inc": {"trigger_count": 1},
        "$push": {"deliveries": {"delivered_at": now, "scheduled_for": reminder["scheduled_at"]}},
        "$set": {"updated_at": now},
    }
    if next_run is None:
        update["$set"].update({"status": ReminderStatus.SENT.value, "is_active": False})
    else:
        update["$set"].update({"scheduled_at": next_run, "snooze.count": 0})

    claimed = await db.reminders.update_one(
        {"_id": reminder["_id"], "status": ReminderStatus.SCHEDULED.value,
         "scheduled_at": reminder["scheduled_at"]},
        update,
    )
    if claimed.modified_count == 0:
        return False

    try:
        await create_notification(
            reminder["user_id"],
            type=NotificationType.DUE_DATE_REMINDER,
            title=reminder["title"],
            message=reminder.get("message") or reminder["title"],
            related_type=reminder["entity_type"],
            related_id=reminder["entity_id"],
            priority=reminder.get("priority", "medium"),
        )
    except PyMongoError as exc:
        logger.exception("Delivering reminder %s failed", reminder["_id"])
        await db.reminders.update_one(
            {"_id": reminder["_id"]},
            {"$set": {"status": ReminderStatus.FAILED.value, "is_active": False,
                      "last_error": str(exc), "updated_at": utc_now()}},
        )
        return False
    return True


async def process_due_reminders() -> int:
    db = get_db()
    now = utc_now()
    cursor = db.reminders.find({
        "status": ReminderStatus.SCHEDULED.value,
        "is_active": True,
        "scheduled_at": {"$lte": now},
    }).sort("scheduled_at", 1).limit(BATCH_SIZE)

    delivered = 0
    async for reminder in cursor:
        if await _deliver(reminder, now):
            delivered += 1
    if delivered:
        logger.info("Delivered %d reminders", delivered)
    return delivered
