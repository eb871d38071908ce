"""Tests for workspace, space and board membership rules."""

import pytest

from taskflow.boards import membership as board_membership
from taskflow.boards.service import allowed
from taskflow.spaces import membership as space_membership
from taskflow.utils.errors import NotFoundError, ValidationError
from taskflow.workspaces import membership as workspace_membership


def _workspace(**extra):
    ws = {"_id": "w1", "owner_id": "owner", "members": [], "spaces": [], "limits": {"max_members": 10}}
    ws.update(extra)
    return workspace_membership.recount(ws)


def _space(private=False, members=()):
    return {
        "_id": "s1",
        "workspace_id": "w1",
        "members": [
            {"user_id": uid, "role": role, "permissions": None} for uid, role in members
        ],
        "settings": {"is_private": private},
    }


# Workspaces

def test_owner_counted_in_members_count():
    ws = _workspace()
    assert ws["usage"]["members_count"] == 1
    workspace_membership.add_member(ws, "u1", "member")
    assert ws["usage"]["members_count"] == 2


def test_add_existing_member_updates_role():
    ws = _workspace()
    workspace_membership.add_member(ws, "u1", "member")
    workspace_membership.add_member(ws, "u1", "admin")
    assert len(ws["members"]) == 1
    assert workspace_membership.role_of(ws, "u1") == "admin"


def test_owner_cannot_be_added_as_member():
    with pytest.raises(ValidationError):
        workspace_membership.add_member(_workspace(), "owner", "member")


def test_invalid_workspace_role_rejected():
    with pytest.raises(ValidationError):
        workspace_membership.add_member(_workspace(), "u1", "owner")


def test_member_limit_includes_owner():
    ws = _workspace(limits={"max_members": 3})
    workspace_membership.add_member(ws, "u1")
    workspace_membership.add_member(ws, "u2")
    with pytest.raises(ValidationError):
        workspace_membership.add_member(ws, "u3")


def test_remove_owner_rejected_and_unknown_member_missing():
    ws = _workspace()
    with pytest.raises(ValidationError):
        workspace_membership.remove_member(ws, "owner")
    with pytest.raises(NotFoundError):
        workspace_membership.remove_member(ws, "nobody")


def test_transfer_ownership_demotes_previous_owner_to_admin():
    ws = _workspace()
    workspace_membership.add_member(ws, "u1", "member")
    previous = workspace_membership.transfer_ownership(ws, "u1")

    assert previous == "owner"
    assert ws["owner_id"] == "u1"
    assert workspace_membership.role_of(ws, "owner") == "admin"
    assert workspace_membership.find_member(ws, "u1") is None
    assert ws["usage"]["members_count"] == 2


def test_transfer_requires_existing_member():
    with pytest.raises(ValidationError):
        workspace_membership.transfer_ownership(_workspace(), "stranger")


def test_member_list_puts_owner_first():
    ws = _workspace()
    workspace_membership.add_member(ws, "u1")
    listed = workspace_membership.member_list(ws)
    assert [m["user_id"] for m in listed] == ["owner", "u1"]
    assert listed[0]["role"] == "owner"


# Spaces

def test_space_recount_tracks_members_and_boards():
    space = _space(members=[("u1", "member")])
    space["boards"] = ["b1", "b2"]
    space_membership.recount(space)
    assert space["stats"]["active_members_count"] == 1
    assert space["stats"]["total_boards"] == 2


def test_workspace_admin_acts_as_space_admin():
    ws = _workspace()
    workspace_membership.add_member(ws, "admin1", "admin")
    perms = space_membership.effective_permissions(_space(private=True), ws, "admin1")
    assert perms["can_manage_members"]


def test_workspace_member_views_public_space_only():
    ws = _workspace()
    workspace_membership.add_member(ws, "u1")
    public = space_membership.effective_permissions(_space(), ws, "u1")
    assert public["can_view_boards"] and not public["can_create_tasks"]
    private = space_membership.effective_permissions(_space(private=True), ws, "u1")
    assert not any(private.values())


def test_space_member_gets_role_permissions():
    ws = _workspace()
    workspace_membership.add_member(ws, "u1")
    perms = space_membership.effective_permissions(_space(private=True, members=[("u1", "member")]), ws, "u1")
    assert perms["can_create_tasks"]
    assert not perms["can_manage_members"]


def test_space_member_outside_workspace_has_no_access():
    perms = space_membership.effective_permissions(_space(members=[("ghost", "admin")]), _workspace(), "ghost")
    assert not any(perms.values())


def test_invalid_space_role_rejected():
    with pytest.raises(ValidationError):
        space_membership.add_member(_space(), "u1", "owner")


# Boards

def test_capabilities_always_include_view():
    assert board_membership.normalize_capabilities(["edit"]) == ["view", "edit"]


def test_unknown_capability_rejected():
    with pytest.raises(ValidationError):
        board_membership.normalize_capabilities(["fly"])


def test_board_owner_and_workspace_admin_bypass():
    board = {"owner_id": "o", "members": []}
    assert board_membership.can(board, "o", "manage_members")
    assert board_membership.can(board, "x", "delete", workspace_role="admin")
    assert not board_membership.can(board, "x", "view", workspace_role="member")


def test_board_member_capabilities_and_space_fallback():
    board = {"owner_id": "o", "members": []}
    board_membership.add_member(board, "u1", ["edit"])
    assert board_membership.can(board, "u1", "edit")
    assert not board_membership.can(board, "u1", "delete")
    space_perms = {"can_delete_boards": True}
    assert board_membership.can(board, "u1", "delete", space_permissions=space_perms)


def test_board_owner_cannot_be_added():
    with pytest.raises(ValidationError):
        board_membership.add_member({"owner_id": "o"}, "o", ["view"])


def test_board_owner_outside_workspace_has_no_access():
    ws = _workspace()
    workspace_membership.add_member(ws, "u1", "member")
    board = {"owner_id": "u1", "visibility": "workspace", "members": []}
    space = _space()
    assert allowed(board, space, ws, "u1", "delete")

    workspace_membership.remove_member(ws, "u1")
    for capability in ("view", "edit", "delete"):
        assert not allowed(board, space, ws, "u1", capability)
