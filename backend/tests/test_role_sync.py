"""Tests for membership writes and the user role cache they keep in sync."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

from taskflow.permissions import service as roles_service
from taskflow.permissions.roles import WorkspaceRole
from taskflow.utils.errors import ConflictError
from taskflow.workspaces import service as workspaces_service


class _Cursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self._docs:
            yield doc


def _workspace():
    return {
        "_id": ObjectId(),
        "name": "Acme",
        "owner_id": "owner",
        "members": [{"user_id": "u1", "role": "member", "permissions": {}}],
        "spaces": [],
        "usage": {},
        "status": "active",
        "version": 3,
    }


@pytest.fixture
def workspace_db():
    db = AsyncMock()
    db.workspaces.update_one.return_value = MagicMock(matched_count=1)
    with patch("taskflow.workspaces.service.get_db", return_value=db):
        yield db


@pytest.mark.asyncio
async def test_save_membership_is_guarded_by_version(workspace_db):
    workspace = _workspace()
    await workspaces_service.save_membership(workspace)

    query, update = workspace_db.workspaces.update_one.await_args.args
    assert query == {"_id": workspace["_id"], "version": 3}
    assert update["$set"]["version"] == 4
    assert update["$set"]["usage.members_count"] == 2
    assert workspace["version"] == 4


@pytest.mark.asyncio
async def test_save_membership_lost_race_raises_conflict(workspace_db):
    workspace_db.workspaces.update_one.return_value = MagicMock(matched_count=0)
    workspace = _workspace()
    with pytest.raises(ConflictError):
        await workspaces_service.save_membership(workspace)
    assert workspace["version"] == 3


@pytest.mark.asyncio
async def test_transfer_ownership_syncs_both_role_entries(workspace_db):
    workspace = _workspace()
    workspace_id = str(workspace["_id"])
    with patch("taskflow.workspaces.service.load_workspace", new_callable=AsyncMock, return_value=workspace), \
         patch("taskflow.workspaces.service.log_activity", new_callable=AsyncMock), \
         patch("taskflow.permissions.service.set_workspace_role", new_callable=AsyncMock) as set_role:
        result = await workspaces_service.transfer_ownership(workspace_id, "u1", "owner")

    assert result["owner_id"] == "u1"
    assert set_role.await_args_list == [
        call("owner", workspace_id, WorkspaceRole.ADMIN, session=None),
        call("u1", workspace_id, WorkspaceRole.OWNER, session=None),
    ]


@pytest.mark.asyncio
async def test_role_sync_failure_propagates(workspace_db):
    workspace = _workspace()
    with patch("taskflow.workspaces.service.load_workspace", new_callable=AsyncMock, return_value=workspace), \
         patch("taskflow.workspaces.service.log_activity", new_callable=AsyncMock) as log, \
         patch("taskflow.permissions.service.set_workspace_role", new_callable=AsyncMock,
               side_effect=PyMongoError("write failed")):
        with pytest.raises(PyMongoError):
            await workspaces_service.transfer_ownership(str(workspace["_id"]), "u1", "owner")
    log.assert_not_awaited()


@pytest.fixture
def roles_db():
    db = AsyncMock()
    with patch("taskflow.permissions.service.get_db", return_value=db):
        yield db


@pytest.mark.asyncio
async def test_set_role_updates_existing_entry_in_place(roles_db):
    roles_db.user_roles.update_one.return_value = MagicMock(matched_count=1)
    await roles_service.set_workspace_role("u1", "w1", "admin")

    roles_db.user_roles.update_one.assert_awaited_once()
    query, update = roles_db.user_roles.update_one.await_args.args
    assert query == {"user_id": "u1", "workspaces.workspace_id": "w1"}
    assert update["$set"]["workspaces.$.role"] == "admin"


@pytest.mark.asyncio
async def test_set_role_pushes_missing_entry(roles_db):
    roles_db.user_roles.update_one.side_effect = [MagicMock(matched_count=0), MagicMock()]
    await roles_service.set_space_role("u1", "s1", "viewer")

    push_call = roles_db.user_roles.update_one.await_args_list[1]
    query, update = push_call.args
    assert query == {"user_id": "u1", "spaces.space_id": {"$ne": "s1"}}
    assert update["$push"]["spaces"]["role"] == "viewer"
    assert push_call.kwargs["upsert"] is True


@pytest.mark.asyncio
async def test_set_role_write_error_is_raised(roles_db):
    roles_db.user_roles.update_one.side_effect = PyMongoError("down")
    with pytest.raises(PyMongoError):
        await roles_service.set_workspace_role("u1", "w1", "member")


@pytest.mark.asyncio
async def test_reconcile_rebuilds_cache_and_keeps_join_dates(roles_db):
    joined = datetime(2024, 1, 1, tzinfo=timezone.utc)
    roles_db.user_roles.find_one.return_value = {
        "user_id": "u1",
        "workspaces": [{"workspace_id": "w1", "role": "member", "joined_at": joined}],
        "spaces": [{"space_id": "stale", "role": "admin"}],
        "boards": [],
    }
    expected = {
        "workspaces": [{"workspace_id": "w1", "role": "admin", "permissions": {}}],
        "spaces": [],
        "boards": [],
    }
    with patch("taskflow.permissions.service._expected_for", new_callable=AsyncMock, return_value=expected):
        result = await roles_service.reconcile_user_roles("u1")

    assert {d["entity_id"] for d in result["fixed"]} == {"w1", "stale"}
    update = roles_db.user_roles.update_one.await_args.args[1]
    assert update["$set"]["workspaces"][0]["role"] == "admin"
    assert update["$set"]["workspaces"][0]["joined_at"] == joined
    assert update["$set"]["spaces"] == []


def test_system_admin_from_cache_or_user():
    assert roles_service.is_system_admin({"role": "user"}, {"system_role": "admin"})
    assert roles_service.is_system_admin({"role": "super_admin"})
    assert not roles_service.is_system_admin({}, {"system_role": "user"})


@pytest.mark.asyncio
async def test_remove_member_cascades_to_spaces_boards_and_cache(workspace_db):
    workspace = _workspace()
    workspace_id = str(workspace["_id"])
    space = {
        "_id": ObjectId(),
        "members": [{"user_id": "u1", "role": "member"}, {"user_id": "u2", "role": "admin"}],
        "boards": [],
        "stats": {"active_members_count": 2},
    }
    owned = {"_id": ObjectId(), "owner_id": "u1"}
    shared = {"_id": ObjectId(), "owner_id": "owner"}
    workspace_db.spaces.find = MagicMock(return_value=_Cursor([space]))
    workspace_db.boards.find = MagicMock(return_value=_Cursor([owned, shared]))

    with patch("taskflow.workspaces.service.load_workspace", new_callable=AsyncMock, return_value=workspace), \
         patch("taskflow.workspaces.service.log_activity", new_callable=AsyncMock), \
         patch("taskflow.permissions.service.remove_workspace_role", new_callable=AsyncMock) as drop_ws, \
         patch("taskflow.permissions.service.remove_space_role", new_callable=AsyncMock) as drop_space, \
         patch("taskflow.permissions.service.remove_board_role", new_callable=AsyncMock) as drop_board, \
         patch("taskflow.permissions.service.set_board_role", new_callable=AsyncMock) as set_board:
        await workspaces_service.remove_member(workspace_id, "u1", "owner")

    assert workspace["members"] == []
    drop_ws.assert_awaited_once_with("u1", workspace_id, session=None)

    space_update = workspace_db.spaces.update_one.await_args.args[1]
    assert [m["user_id"] for m in space_update["$set"]["members"]] == ["u2"]
    assert space_update["$set"]["stats.active_members_count"] == 1
    drop_space.assert_awaited_once_with("u1", str(space["_id"]), session=None)

    board_query = workspace_db.boards.find.call_args.args[0]
    assert {"owner_id": "u1"} in board_query["$or"]
    updates = {c.args[0]["_id"]: c.args[1] for c in workspace_db.boards.update_one.await_args_list}
    assert updates[owned["_id"]]["$set"]["owner_id"] == "owner"
    assert updates[shared["_id"]]["$pull"] == {"members": {"user_id": "u1"}}
    set_board.assert_awaited_once_with("owner", str(owned["_id"]), ["manage_members"], session=None)
    assert drop_board.await_args_list == [
        call("u1", str(owned["_id"]), session=None),
        call("u1", str(shared["_id"]), session=None),
    ]


@pytest.mark.asyncio
async def test_has_workspace_role_reads_workspace_document(roles_db):
    workspace_id = str(ObjectId())
    roles_db.workspaces.find_one.return_value = {
        "owner_id": "owner", "members": [{"user_id": "u1", "role": "member"}],
    }
    assert await roles_service.has_workspace_role("owner", workspace_id, "admin")
    assert await roles_service.has_workspace_role("u1", workspace_id)
    assert not await roles_service.has_workspace_role("u1", workspace_id, "admin")
    assert not await roles_service.has_workspace_role("stranger", workspace_id)

    roles_db.workspaces.find_one.return_value = None
    assert not await roles_service.has_workspace_role("owner", workspace_id)


@pytest.mark.asyncio
async def test_has_space_permission_folds_in_workspace_role(roles_db):
    workspace_id = str(ObjectId())
    roles_db.spaces.find_one.return_value = {
        "_id": ObjectId(),
        "workspace_id": workspace_id,
        "members": [{"user_id": "u1", "role": "viewer", "permissions": None}],
        "settings": {"is_private": True},
    }
    roles_db.workspaces.find_one.return_value = {
        "owner_id": "owner",
        "members": [{"user_id": "u1", "role": "member"}, {"user_id": "u2", "role": "admin"}],
    }
    space_id = str(ObjectId())

    assert await roles_service.has_space_permission("u1", space_id, "can_view_boards")
    assert not await roles_service.has_space_permission("u1", space_id, "can_manage_members")
    assert await roles_service.has_space_permission("u2", space_id, "can_manage_members")
    assert not await roles_service.has_space_permission("outsider", space_id, "can_view_boards")

    roles_db.spaces.find_one.return_value = None
    assert not await roles_service.has_space_permission("owner", space_id, "can_view_boards")
