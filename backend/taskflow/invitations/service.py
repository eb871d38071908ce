"""Invitations to workspaces and spaces.

Accepting claims the invitation with a conditional update on
``status == "pending"`` before granting membership, so two concurrent accepts
cannot both succeed. Without transactions a failed grant puts the claim back.
"""

import logging
import secrets
from datetime import timedelta
from typing import List, Optional

from pymongo.errors import PyMongoError

from taskflow.activity.service import log_activity
from taskflow.config import settings
from taskflow.database import get_db, transaction
from taskflow.invitations import state
from taskflow.invitations.state import InvitationStatus, InvitationType
from taskflow.notifications.schemas import NotificationType
from taskflow.notifications.service import create_notification
from taskflow.permissions import service as roles_service
from taskflow.permissions.roles import SpaceRole, WorkspaceRole
from taskflow.spaces import membership as space_membership
from taskflow.spaces import service as spaces_service
from taskflow.utils.errors import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    TaskFlowError,
    ValidationError,
)
from taskflow.utils.helpers import serialize_doc, to_object_id, utc_now
from taskflow.workspaces import membership as workspace_membership
from taskflow.workspaces import service as workspaces_service

logger = logging.getLogger(__name__)

ROLES = {
    InvitationType.WORKSPACE: (WorkspaceRole.MEMBER.value, WorkspaceRole.ADMIN.value),
    InvitationType.SPACE: tuple(r.value for r in SpaceRole),
}


def _present(invitation: dict, include_token: bool = False) -> dict:
    result = serialize_doc(invitation)
    result["status"] = state.effective_status(invitation).value
    if not include_token:
        result.pop("token", None)
    return result


async def _entity_context(inv_type: InvitationType, entity_id: str, actor_id: str):
    """Load the target entity and check the actor may invite to it."""
    if inv_type == InvitationType.WORKSPACE:
        workspace = await workspaces_service.load_workspace(entity_id)
        role = workspaces_service.require_role(workspace, actor_id)
        if role == WorkspaceRole.MEMBER.value and not workspace.get("settings", {}).get("allow_member_invites"):
            raise PermissionDenied("Only admins can invite to this workspace")
        return workspace, workspace
    space, workspace, _ = await spaces_service.space_context(entity_id, actor_id, "can_manage_members")
    return space, workspace


def _is_member(inv_type: InvitationType, entity: dict, user_id: str) -> bool:
    if inv_type == InvitationType.WORKSPACE:
        return workspace_membership.role_of(entity, user_id) is not None
    return space_membership.find_member(entity, user_id) is not None


def _check_role(inv_type: InvitationType, role: str, actor_role: Optional[str]) -> str:
    if role not in ROLES[inv_type]:
        raise ValidationError(f"Invalid role for {inv_type.value} invitation: {role}")
    if inv_type == InvitationType.WORKSPACE and role == WorkspaceRole.ADMIN.value \
            and actor_role == WorkspaceRole.MEMBER.value:
        raise PermissionDenied("Only admins can invite admins")
    return role


async def create_invitation(
    inv_type: InvitationType,
    entity_id: str,
    actor_id: str,
    email: str,
    role: str,
    message: Optional[str] = None,
) -> dict:
    db = get_db()
    inv_type = InvitationType(inv_type)
    entity, workspace = await _entity_context(inv_type, entity_id, actor_id)
    _check_role(inv_type, role, workspace_membership.role_of(workspace, actor_id))
    email = email.lower()

    user = await db.users.find_one({"email": email})
    user_id = str(user["_id"]) if user else None
    if user_id and _is_member(inv_type, entity, user_id):
        raise ConflictError("User is already a member")

    now = utc_now()
    duplicate = await db.invitations.find_one({
        "target_entity.id": entity_id,
        "invited_user.email": email,
        "status": InvitationStatus.PENDING.value,
        "expires_at": {"$gt": now},
    })
    if duplicate:
        raise ConflictError("An invitation is already pending for this email")

    doc = {
        "type": inv_type.value,
        "invited_by": actor_id,
        "invited_user": {"email": email, "user_id": user_id},
        "target_entity": {"type": inv_type.value, "id": entity_id, "name": entity.get("name", "")},
        "role": role,
        "message": message,
        "token": secrets.token_urlsafe(32),
        "status": InvitationStatus.PENDING.value,
        "expires_at": now + timedelta(days=settings.INVITATION_EXPIRY_DAYS),
        "reminders_sent": 0,
        "last_reminder_at": None,
        "created_at": now,
        "updated_at": now,
    }
    result = await db.invitations.insert_one(doc)
    doc["_id"] = result.inserted_id

    if user_id:
        await _notify_invitee(doc, user_id)
    await log_activity(actor_id, "invitation_sent", inv_type.value, entity_id, entity.get("name", ""),
                       workspace_id=str(workspace["_id"]), metadata={"email": email, "role": role})
    logger.info("Invitation %s sent to %s for %s %s", doc["_id"], email, inv_type.value, entity_id)
    return _present(doc, include_token=True)


async def _notify_invitee(invitation: dict, user_id: str):
    kind = (NotificationType.WORKSPACE_INVITATION
            if invitation["type"] == InvitationType.WORKSPACE.value
            else NotificationType.SPACE_INVITATION)
    name = invitation["target_entity"]["name"]
    await create_notification(
        user_id,
        type=kind,
        title="You have a new invitation",
        message=f'You were invited to join "{name}" as {invitation["role"]}',
        sender_id=invitation["invited_by"],
        related_type="invitation",
        related_id=str(invitation["_id"]),
    )


async def invite_to_workspace(workspace_id: str, actor_id: str, email: str, role: str, message: str = None) -> dict:
    return await create_invitation(InvitationType.WORKSPACE, workspace_id, actor_id, email, role, message)


async def invite_to_space(space_id: str, actor_id: str, email: str, role: str, message: str = None) -> dict:
    return await create_invitation(InvitationType.SPACE, space_id, actor_id, email, role, message)


async def bulk_invite(inv_type: InvitationType, entity_id: str, actor_id: str, emails: List[str],
                      role: str, message: str = None) -> dict:
    results, errors = [], []
    for email in dict.fromkeys(e.lower() for e in emails):
        try:
            results.append(await create_invitation(inv_type, entity_id, actor_id, email, role, message))
        except (ConflictError, ValidationError) as exc:
            errors.append({"email": email, "message": exc.message})
    return {"results": results, "errors": errors}


async def create_invite_link(workspace_id: str, actor_id: str, role: str, expires_hours: int = 72) -> dict:
    db = get_db()
    workspace = await workspaces_service.load_workspace(workspace_id)
    actor_role = workspaces_service.require_role(workspace, actor_id, WorkspaceRole.ADMIN)
    _check_role(InvitationType.WORKSPACE, role, actor_role)

    now = utc_now()
    doc = {
        "type": InvitationType.WORKSPACE.value,
        "invited_by": actor_id,
        "invited_user": {"email": None, "user_id": None},
        "target_entity": {"type": InvitationType.WORKSPACE.value, "id": workspace_id, "name": workspace["name"]},
        "role": role,
        "message": None,
        "token": secrets.token_urlsafe(32),
        "status": InvitationStatus.PENDING.value,
        "expires_at": now + timedelta(hours=expires_hours),
        "reminders_sent": 0,
        "is_link": True,
        "created_at": now,
        "updated_at": now,
    }
    result = await db.invitations.insert_one(doc)
    doc["_id"] = result.inserted_id
    return _present(doc, include_token=True)


async def _expire_if_due(invitation: dict) -> dict:
    """Persist a lazily observed expiry."""
    db = get_db()
    if invitation["status"] == InvitationStatus.PENDING.value and state.is_expired(invitation):
        await db.invitations.update_one(
            {"_id": invitation["_id"], "status": InvitationStatus.PENDING.value},
            {"$set": {"status": InvitationStatus.EXPIRED.value, "updated_at": utc_now()}},
        )
        invitation["status"] = InvitationStatus.EXPIRED.value
    return invitation


async def _load_by_token(token: str) -> dict:
    db = get_db()
    invitation = await db.invitations.find_one({"token": token})
    if invitation is None:
        raise NotFoundError("Invitation not found")
    return await _expire_if_due(invitation)


async def _load_by_id(invitation_id: str) -> dict:
    db = get_db()
    invitation = await db.invitations.find_one({"_id": to_object_id(invitation_id, "Invitation")})
    if invitation is None:
        raise NotFoundError("Invitation not found")
    return await _expire_if_due(invitation)


async def get_by_token(token: str) -> dict:
    return _present(await _load_by_token(token))


async def _claim(invitation: dict, target: InvitationStatus, extra: dict = None, session=None) -> dict:
    db = get_db()
    fields = state.transition(invitation, target)
    fields.update(extra or {})
    claimed = await db.invitations.find_one_and_update(
        {
            "_id": invitation["_id"],
            "status": InvitationStatus.PENDING.value,
            "expires_at": {"$gt": utc_now()},
        },
        {"$set": fields},
        return_document=True,
        session=session,
    )
    if claimed is None:
        raise ConflictError("Invitation is no longer pending")
    return claimed


async def _grant(invitation: dict, user_id: str, session=None):
    entity_id = invitation["target_entity"]["id"]
    inviter = invitation["invited_by"]
    if invitation["type"] == InvitationType.WORKSPACE.value:
        await workspaces_service.add_member(entity_id, user_id, invitation["role"],
                                            invited_by=inviter, session=session)
        return

    space = await spaces_service.load_space(entity_id, session=session)
    workspace = await workspaces_service.load_workspace(space["workspace_id"], session=session)
    if workspace_membership.role_of(workspace, user_id) is None:
        await workspaces_service.add_member(space["workspace_id"], user_id, WorkspaceRole.MEMBER,
                                            invited_by=inviter, session=session)
    await spaces_service.add_member(entity_id, user_id, invitation["role"], added_by=inviter, session=session)


async def _already_member(invitation: dict, user_id: str) -> bool:
    entity_id = invitation["target_entity"]["id"]
    if invitation["type"] == InvitationType.WORKSPACE.value:
        entity = await workspaces_service.load_workspace(entity_id)
        return _is_member(InvitationType.WORKSPACE, entity, user_id)
    entity = await spaces_service.load_space(entity_id)
    return _is_member(InvitationType.SPACE, entity, user_id)


async def accept(token: str, user: dict) -> dict:
    db = get_db()
    invitation = await _load_by_token(token)
    state.ensure_pending(invitation)
    if not state.matches_invitee(invitation, user):
        raise PermissionDenied("This invitation was sent to someone else")
    if await _already_member(invitation, user["id"]):
        raise ConflictError("You are already a member")

    async with transaction() as session:
        claimed = await _claim(invitation, InvitationStatus.ACCEPTED, {"accepted_by": user["id"]}, session=session)
        try:
            await _grant(invitation, user["id"], session=session)
        except (TaskFlowError, PyMongoError):
            if session is None:
                await db.invitations.update_one(
                    {"_id": invitation["_id"], "status": InvitationStatus.ACCEPTED.value},
                    {"$set": {"status": InvitationStatus.PENDING.value, "accepted_at": None, "accepted_by": None}},
                )
                logger.warning("Membership grant failed; invitation %s restored to pending", invitation["_id"])
            raise

    target = invitation["target_entity"]
    await create_notification(
        invitation["invited_by"],
        type=NotificationType.INVITATION_ACCEPTED,
        title="Invitation accepted",
        message=f'{user.get("full_name") or user.get("email")} joined "{target["name"]}"',
        sender_id=user["id"],
        related_type=target["type"],
        related_id=target["id"],
    )
    await log_activity(user["id"], "invitation_accepted", target["type"], target["id"], target["name"],
                       metadata={"invitation_id": str(invitation["_id"]), "role": invitation["role"]})
    return {"invitation": _present(claimed), "entity": target}


async def decline(token: str, user: dict) -> dict:
    invitation = await _load_by_token(token)
    state.ensure_pending(invitation)
    if not state.matches_invitee(invitation, user):
        raise PermissionDenied("This invitation was sent to someone else")
    claimed = await _claim(invitation, InvitationStatus.DECLINED)
    return _present(claimed)


async def _require_manager(invitation: dict, actor_id: str):
    if invitation["invited_by"] == actor_id:
        return
    await _entity_manager(InvitationType(invitation["type"]), invitation["target_entity"]["id"], actor_id)


async def cancel(invitation_id: str, actor_id: str) -> dict:
    invitation = await _load_by_id(invitation_id)
    await _require_manager(invitation, actor_id)
    return _present(await _claim(invitation, InvitationStatus.CANCELLED))


async def resend(invitation_id: str, actor_id: str) -> dict:
    db = get_db()
    invitation = await _load_by_id(invitation_id)
    await _require_manager(invitation, actor_id)
    state.ensure_pending(invitation)
    if invitation.get("reminders_sent", 0) >= settings.INVITATION_MAX_REMINDERS:
        raise ValidationError("Reminder limit reached for this invitation")

    doc = await db.invitations.find_one_and_update(
        {"_id": invitation["_id"], "status": InvitationStatus.PENDING.value},
        {"$inc": {"reminders_sent": 1}, "$set": {"last_reminder_at": utc_now(), "updated_at": utc_now()}},
        return_document=True,
    )
    if doc is None:
        raise ConflictError("Invitation is no longer pending")
    if doc["invited_user"].get("user_id"):
        await _notify_invitee(doc, doc["invited_user"]["user_id"])
    return _present(doc)


async def extend(invitation_id: str, actor_id: str, days: int) -> dict:
    """Push back the expiry; a stored-pending invitation past its deadline is revived."""
    db = get_db()
    invitation = await db.invitations.find_one({"_id": to_object_id(invitation_id, "Invitation")})
    if invitation is None:
        raise NotFoundError("Invitation not found")
    await _require_manager(invitation, actor_id)
    if invitation["status"] != InvitationStatus.PENDING.value:
        raise ConflictError(f"Invitation has already been {invitation['status']}")

    doc = await db.invitations.find_one_and_update(
        {"_id": invitation["_id"], "status": InvitationStatus.PENDING.value},
        {"$set": {"expires_at": state.extended_expiry(invitation, days), "updated_at": utc_now()}},
        return_document=True,
    )
    if doc is None:
        raise ConflictError("Invitation is no longer pending")
    return _present(doc)


async def list_for_user(user: dict) -> List[dict]:
    db = get_db()
    cursor = db.invitations.find({
        "$or": [{"invited_user.email": user["email"].lower()}, {"invited_user.user_id": user["id"]}],
        "status": InvitationStatus.PENDING.value,
        "expires_at": {"$gt": utc_now()},
    }).sort("created_at", -1)
    return [_present(doc, include_token=True) async for doc in cursor]


async def _entity_manager(inv_type: InvitationType, entity_id: str, actor_id: str):
    if inv_type == InvitationType.WORKSPACE:
        permitted = await roles_service.has_workspace_role(actor_id, entity_id, WorkspaceRole.ADMIN)
    else:
        permitted = await roles_service.has_space_permission(actor_id, entity_id, "can_manage_members")
    if not permitted:
        raise PermissionDenied("You cannot manage invitations here")


async def list_for_entity(inv_type: InvitationType, entity_id: str, actor_id: str,
                          status: Optional[str] = None) -> List[dict]:
    db = get_db()
    await _entity_manager(InvitationType(inv_type), entity_id, actor_id)
    await expire_stale_invitations({"target_entity.id": entity_id})
    query = {"target_entity.id": entity_id}
    if status:
        query["status"] = getattr(status, "value", status)
    cursor = db.invitations.find(query).sort("created_at", -1)
    return [_present(doc) async for doc in cursor]


async def stats_for_entity(inv_type: InvitationType, entity_id: str, actor_id: str) -> dict:
    db = get_db()
    await _entity_manager(InvitationType(inv_type), entity_id, actor_id)
    await expire_stale_invitations({"target_entity.id": entity_id})
    stats = {s.value: 0 for s in InvitationStatus}
    async for row in db.invitations.aggregate([
        {"$match": {"target_entity.id": entity_id}},
        {"$group": {"_id": "$status", "count": {"$sum": 1}}},
    ]):
        stats[row["_id"]] = row["count"]
    stats["total"] = sum(stats.values())
    return stats


async def expire_stale_invitations(extra_filter: dict = None) -> int:
    db = get_db()
    query = {"status": InvitationStatus.PENDING.value, "expires_at": {"$lte": utc_now()}}
    query.update(extra_filter or {})
    result = await db.invitations.update_many(
        query, {"$set": {"status": InvitationStatus.EXPIRED.value, "updated_at": utc_now()}},
    )
    if result.modified_count and not extra_filter:
        logger.info("Expired %d stale invitations", result.modified_count)
    return result.modified_count
