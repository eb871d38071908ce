from fastapi import APIRouter, Depends

from taskflow.auth.dependencies import get_current_user
from taskflow.notifications import service
from taskflow.notifications.schemas import NotificationQuery
from taskflow.utils.helpers import envelope

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/")
async def list_notifications(
    query: NotificationQuery = Depends(),
    current_user: dict = Depends(get_current_user),
):
    data = await service.list_notifications(
        current_user["id"],
        unread_only=query.unread_only,
        type=query.type,
        limit=query.limit,
        skip=query.skip,
    )
    return envelope(data, "Notifications retrieved")


@router.get("/stats")
async def notification_stats(current_user: dict = Depends(get_current_user)):
    return envelope(await service.notification_stats(current_user["id"]), "Notification stats retrieved")


@router.patch("/read-all")
async def mark_all_read(current_user: dict = Depends(get_current_user)):
    count = await service.mark_all_as_read(current_user["id"])
    return envelope({"updated": count}, "All notifications marked as read")


@router.patch("/{notification_id}/read")
async def mark_read(notification_id: str, current_user: dict = Depends(get_current_user)):
    data = await service.mark_as_read(notification_id, current_user["id"])
    return envelope(data, "Notification marked as read")


@router.delete("/read")
async def delete_read(current_user: dict = Depends(get_current_user)):
    count = await service.delete_read(current_user["id"])
    return envelope({"deleted": count}, "Read notifications deleted")


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, current_user: dict = Depends(get_current_user)):
    await service.delete_notification(notification_id, current_user["id"])
    return envelope(None, "Notification deleted")
