"""Invitation lifecycle.

``pending`` is the only non-terminal status. A pending invitation whose
``expires_at`` has passed is reported as ``expired`` even before the stored
status catches up.
"""

from datetime import datetime, timedelta
from enum import Enum

from taskflow.utils.errors import ConflictError, ValidationError
from taskflow.utils.helpers import as_utc, utc_now


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class InvitationType(str, Enum):
    WORKSPACE = "workspace"
    SPACE = "space"


TERMINAL = {
    InvitationStatus.ACCEPTED,
    InvitationStatus.DECLINED,
    InvitationStatus.EXPIRED,
    InvitationStatus.CANCELLED,
}


def is_expired(invitation: dict, now: datetime = None) -> bool:
    expires_at = as_utc(invitation.get("expires_at"))
    return expires_at is not None and expires_at <= (now or utc_now())


def effective_status(invitation: dict, now: datetime = None) -> InvitationStatus:
    status = InvitationStatus(invitation["status"])
    if status == InvitationStatus.PENDING and is_expired(invitation, now):
        return InvitationStatus.EXPIRED
    return status


def ensure_pending(invitation: dict, now: datetime = None) -> None:
    status = effective_status(invitation, now)
    if status == InvitationStatus.EXPIRED:
        raise ValidationError("Invitation has expired")
    if status != InvitationStatus.PENDING:
        raise ConflictError(f"Invitation has already been {status.value}")


def transition(invitation: dict, target: InvitationStatus, now: datetime = None) -> dict:
    """Return the ``$set`` fields for moving a pending invitation to ``target``."""
    ensure_pending(invitation, now)
    if target not in TERMINAL:
        raise ValidationError(f"Cannot move invitation to {target.value}")
    now = now or utc_now()
    fields = {"status": target.value, "updated_at": now}
    if target == InvitationStatus.ACCEPTED:
        fields["accepted_at"] = now
    elif target == InvitationStatus.DECLINED:
        fields["declined_at"] = now
    elif target == InvitationStatus.CANCELLED:
        fields["cancelled_at"] = now
    return fields


def extended_expiry(invitation: dict, days: int, now: datetime = None) -> datetime:
    if days < 1:
        raise ValidationError("Extension must be at least one day")
    now = now or utc_now()
    base = max(as_utc(invitation["expires_at"]), now)
    return base + timedelta(days=days)


def matches_invitee(invitation: dict, user: dict) -> bool:
    invited = invitation.get("invited_user") or {}
    if invited.get("user_id") and invited["user_id"] == user.get("id"):
        return True
    email = invited.get("email")
    if email and user.get("email") and email.lower() == user["email"].lower():
        return True
    # Link invitations carry no invitee
    return not invited.get("user_id") and not email
