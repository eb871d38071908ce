"""Tests for the invitation lifecycle rules."""

from datetime import datetime, timedelta, timezone

import pytest

from taskflow.invitations import state
from taskflow.invitations.state import InvitationStatus
from taskflow.utils.errors import ConflictError, ValidationError

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _invitation(status="pending", expires_in=timedelta(days=3), **extra):
    inv = {
        "status": status,
        "expires_at": NOW + expires_in,
        "invited_user": {"email": "ana@example.com", "user_id": None},
    }
    inv.update(extra)
    return inv


def test_pending_past_expiry_reports_expired():
    inv = _invitation(expires_in=timedelta(seconds=-1))
    assert state.effective_status(inv, NOW) == InvitationStatus.EXPIRED
    assert state.effective_status(_invitation(), NOW) == InvitationStatus.PENDING


def test_naive_expiry_is_treated_as_utc():
    inv = _invitation()
    inv["expires_at"] = (NOW - timedelta(hours=1)).replace(tzinfo=None)
    assert state.is_expired(inv, NOW)


def test_ensure_pending_errors():
    with pytest.raises(ValidationError):
        state.ensure_pending(_invitation(expires_in=timedelta(0)), NOW)
    with pytest.raises(ConflictError) as exc:
        state.ensure_pending(_invitation(status="accepted"), NOW)
    assert "accepted" in exc.value.message


def test_transition_to_accepted_sets_timestamp():
    fields = state.transition(_invitation(), InvitationStatus.ACCEPTED, NOW)
    assert fields["status"] == "accepted"
    assert fields["accepted_at"] == NOW


def test_terminal_states_cannot_transition():
    for status in ("accepted", "declined", "cancelled"):
        with pytest.raises(ConflictError):
            state.transition(_invitation(status=status), InvitationStatus.DECLINED, NOW)


def test_stored_expired_cannot_transition():
    with pytest.raises(ValidationError):
        state.transition(_invitation(status="expired"), InvitationStatus.ACCEPTED, NOW)


def test_transition_back_to_pending_rejected():
    with pytest.raises(ValidationError):
        state.transition(_invitation(), InvitationStatus.PENDING, NOW)


def test_extend_from_future_expiry():
    inv = _invitation(expires_in=timedelta(days=2))
    assert state.extended_expiry(inv, 5, NOW) == NOW + timedelta(days=7)


def test_extend_lapsed_invitation_counts_from_now():
    inv = _invitation(expires_in=timedelta(days=-10))
    assert state.extended_expiry(inv, 1, NOW) == NOW + timedelta(days=1)


def test_extend_requires_positive_days():
    with pytest.raises(ValidationError):
        state.extended_expiry(_invitation(), 0, NOW)


def test_matches_invitee_by_email_case_insensitive():
    inv = _invitation()
    assert state.matches_invitee(inv, {"id": "u1", "email": "Ana@Example.com"})
    assert not state.matches_invitee(inv, {"id": "u2", "email": "bob@example.com"})


def test_matches_invitee_by_user_id():
    inv = _invitation(invited_user={"email": "old@example.com", "user_id": "u1"})
    assert state.matches_invitee(inv, {"id": "u1", "email": "new@example.com"})


def test_link_invitation_matches_anyone():
    inv = _invitation(invited_user={"email": None, "user_id": None})
    assert state.matches_invitee(inv, {"id": "u9", "email": "x@example.com"})
