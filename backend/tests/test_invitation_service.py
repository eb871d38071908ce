"""Tests for invitation acceptance and maintenance against a mocked database."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId

from taskflow.invitations import service
from taskflow.utils.errors import ConflictError, PermissionDenied, ValidationError
from taskflow.utils.helpers import utc_now

INVITER = "inviter-1"
USER = {"id": "user-1", "email": "ana@example.com", "full_name": "Ana"}


def _invitation(**extra):
    inv = {
        "_id": ObjectId(),
        "type": "workspace",
        "invited_by": INVITER,
        "invited_user": {"email": "ana@example.com", "user_id": None},
        "target_entity": {"type": "workspace", "id": str(ObjectId()), "name": "Acme"},
        "role": "member",
        "token": "tok",
        "status": "pending",
        "expires_at": utc_now() + timedelta(days=3),
        "reminders_sent": 0,
    }
    inv.update(extra)
    return inv


@pytest.fixture
def mock_db():
    db = AsyncMock()
    with patch("taskflow.invitations.service.get_db", return_value=db):
        yield db


@pytest.fixture
def side_effects():
    with patch("taskflow.invitations.service.create_notification", new_callable=AsyncMock) as notify, \
         patch("taskflow.invitations.service.log_activity", new_callable=AsyncMock) as log, \
         patch("taskflow.invitations.service._already_member", new_callable=AsyncMock, return_value=False):
        yield notify, log


@pytest.mark.asyncio
async def test_accept_grants_membership_and_notifies_inviter(mock_db, side_effects):
    notify, log = side_effects
    inv = _invitation()
    mock_db.invitations.find_one.return_value = inv
    mock_db.invitations.find_one_and_update.return_value = {**inv, "status": "accepted"}

    with patch("taskflow.workspaces.service.add_member", new_callable=AsyncMock) as add_member:
        result = await service.accept("tok", USER)

    add_member.assert_awaited_once_with(
        inv["target_entity"]["id"], USER["id"], "member", invited_by=INVITER, session=None
    )
    assert result["invitation"]["status"] == "accepted"
    assert "token" not in result["invitation"]
    assert notify.await_args.args[0] == INVITER
    log.assert_awaited_once()


@pytest.mark.asyncio
async def test_accept_claim_is_conditional_on_pending(mock_db, side_effects):
    inv = _invitation()
    mock_db.invitations.find_one.return_value = inv
    mock_db.invitations.find_one_and_update.return_value = None

    with patch("taskflow.workspaces.service.add_member", new_callable=AsyncMock) as add_member:
        with pytest.raises(ConflictError):
            await service.accept("tok", USER)

    claim_filter = mock_db.invitations.find_one_and_update.await_args.args[0]
    assert claim_filter["status"] == "pending"
    add_member.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_grant_restores_pending(mock_db, side_effects):
    notify, _ = side_effects
    inv = _invitation()
    mock_db.invitations.find_one.return_value = inv
    mock_db.invitations.find_one_and_update.return_value = {**inv, "status": "accepted"}

    with patch("taskflow.workspaces.service.add_member", new_callable=AsyncMock,
               side_effect=ConflictError("Workspace was modified by another request, please retry")):
        with pytest.raises(ConflictError):
            await service.accept("tok", USER)

    restore_filter, restore_update = mock_db.invitations.update_one.await_args.args
    assert restore_filter == {"_id": inv["_id"], "status": "accepted"}
    assert restore_update["$set"]["status"] == "pending"
    notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_space_invitation_joins_workspace_first(mock_db, side_effects):
    space_id = str(ObjectId())
    inv = _invitation(type="space", role="viewer",
                      target_entity={"type": "space", "id": space_id, "name": "Design"})
    mock_db.invitations.find_one.return_value = inv
    mock_db.invitations.find_one_and_update.return_value = {**inv, "status": "accepted"}
    space = {"_id": ObjectId(space_id), "workspace_id": "ws-1", "members": []}
    workspace = {"_id": "ws-1", "owner_id": INVITER, "members": []}

    with patch("taskflow.spaces.service.load_space", new_callable=AsyncMock, return_value=space), \
         patch("taskflow.workspaces.service.load_workspace", new_callable=AsyncMock, return_value=workspace), \
         patch("taskflow.workspaces.service.add_member", new_callable=AsyncMock) as ws_add, \
         patch("taskflow.spaces.service.add_member", new_callable=AsyncMock) as space_add:
        await service.accept("tok", USER)

    ws_add.assert_awaited_once()
    assert ws_add.await_args.args[:2] == ("ws-1", USER["id"])
    space_add.assert_awaited_once_with(space_id, USER["id"], "viewer", added_by=INVITER, session=None)


@pytest.mark.asyncio
async def test_accept_by_someone_else_is_rejected(mock_db, side_effects):
    mock_db.invitations.find_one.return_value = _invitation()
    with pytest.raises(PermissionDenied):
        await service.accept("tok", {"id": "user-2", "email": "bob@example.com"})
    mock_db.invitations.find_one_and_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_expired_invitation_is_persisted_as_expired(mock_db, side_effects):
    inv = _invitation(expires_at=utc_now() - timedelta(minutes=1))
    mock_db.invitations.find_one.return_value = inv

    with pytest.raises(ValidationError):
        await service.accept("tok", USER)

    expire_filter, expire_update = mock_db.invitations.update_one.await_args.args
    assert expire_filter == {"_id": inv["_id"], "status": "pending"}
    assert expire_update["$set"]["status"] == "expired"


@pytest.mark.asyncio
async def test_resend_respects_reminder_cap(mock_db):
    mock_db.invitations.find_one.return_value = _invitation(reminders_sent=5)
    with pytest.raises(ValidationError):
        await service.resend(str(ObjectId()), INVITER)
    mock_db.invitations.find_one_and_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_bulk_invite_collects_per_email_errors():
    outcomes = [{"id": "i1"}, ConflictError("User is already a member")]
    with patch("taskflow.invitations.service.create_invitation", new_callable=AsyncMock,
               side_effect=outcomes) as create:
        result = await service.bulk_invite("workspace", "ws-1", INVITER,
                                           ["a@example.com", "B@example.com", "a@example.com"], "member")

    assert create.await_count == 2
    assert result["results"] == [{"id": "i1"}]
    assert result["errors"] == [{"email": "b@example.com", "message": "User is already a member"}]


@pytest.mark.asyncio
async def test_expire_stale_invitations_sweeps_pending(mock_db):
    mock_db.invitations.update_many.return_value.modified_count = 4
    assert await service.expire_stale_invitations() == 4
    query, update = mock_db.invitations.update_many.await_args.args
    assert query["status"] == "pending"
    assert "$lte" in query["expires_at"]
    assert update["$set"]["status"] == "expired"


@pytest.mark.asyncio
async def test_decline_happens_exactly_once(mock_db):
    inv = _invitation()
    mock_db.invitations.find_one.return_value = inv
    mock_db.invitations.find_one_and_update.return_value = {**inv, "status": "declined"}

    result = await service.decline("tok", USER)
    assert result["status"] == "declined"

    # A concurrent decline that read the invitation while still pending loses the claim
    mock_db.invitations.find_one_and_update.return_value = None
    with pytest.raises(ConflictError):
        await service.decline("tok", USER)

    mock_db.invitations.find_one.return_value = {**inv, "status": "declined"}
    mock_db.invitations.find_one_and_update.reset_mock()
    with pytest.raises(ConflictError):
        await service.decline("tok", USER)
    mock_db.invitations.find_one_and_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_by_workspace_admin_checks_role(mock_db):
    inv = _invitation()
    mock_db.invitations.find_one.return_value = inv
    mock_db.invitations.find_one_and_update.return_value = {**inv, "status": "cancelled"}

    with patch("taskflow.permissions.service.has_workspace_role", new_callable=AsyncMock,
               return_value=True) as has_role:
        result = await service.cancel(str(inv["_id"]), "admin-2")
    assert result["status"] == "cancelled"
    has_role.assert_awaited_once_with("admin-2", inv["target_entity"]["id"], "admin")

    with patch("taskflow.permissions.service.has_workspace_role", new_callable=AsyncMock, return_value=False):
        with pytest.raises(PermissionDenied):
            await service.cancel(str(inv["_id"]), "member-3")


@pytest.mark.asyncio
async def test_space_invitations_managed_through_space_permission(mock_db):
    space_id = str(ObjectId())
    with patch("taskflow.permissions.service.has_space_permission", new_callable=AsyncMock,
               return_value=False) as has_perm:
        with pytest.raises(PermissionDenied):
            await service.list_for_entity("space", space_id, "viewer-1")
    has_perm.assert_awaited_once_with("viewer-1", space_id, "can_manage_members")
    mock_db.invitations.update_many.assert_not_awaited()
