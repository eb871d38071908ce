from typing import Optional

from fastapi import APIRouter, Depends, status

from taskflow.auth.dependencies import get_current_user
from taskflow.reminders import service
from taskflow.reminders.schemas import ReminderCreate, ReminderStatus, ReminderUpdate, SnoozeRequest
from taskflow.utils.helpers import envelope

router = APIRouter(prefix="/reminders", tags=["Reminders"])


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_reminder(req: ReminderCreate, current_user: dict = Depends(get_current_user)):
    result = await service.create_reminder(current_user["id"], req.model_dump())
    return envelope(result, "Reminder created")


@router.get("/")
async def list_reminders(
    status: Optional[ReminderStatus] = None,
    current_user: dict = Depends(get_current_user),
):
    return envelope(await service.list_reminders(current_user["id"], status), "Reminders retrieved")


@router.put("/{reminder_id}")
async def update_reminder(
    reminder_id: str,
    req: ReminderUpdate,
    current_user: dict = Depends(get_current_user),
):
    result = await service.update_reminder(reminder_id, current_user["id"], req.model_dump(exclude_unset=True))
    return envelope(result, "Reminder updated")


@router.post("/{reminder_id}/cancel")
async def cancel_reminder(reminder_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.cancel_reminder(reminder_id, current_user["id"]), "Reminder cancelled")


@router.post("/{reminder_id}/snooze")
async def snooze_reminder(
    reminder_id: str,
    req: SnoozeRequest,
    current_user: dict = Depends(get_current_user),
):
    result = await service.snooze_reminder(reminder_id, current_user["id"], req.minutes)
    return envelope(result, "Reminder snoozed")


@router.delete("/{reminder_id}")
async def delete_reminder(reminder_id: str, current_user: dict = Depends(get_current_user)):
    await service.delete_reminder(reminder_id, current_user["id"])
    return envelope(None, "Reminder deleted")
