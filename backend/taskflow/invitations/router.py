from typing import Optional

from fastapi import APIRouter, Depends, status

from taskflow.auth.dependencies import get_current_user
from taskflow.invitations import service
from taskflow.invitations.schemas import (
    BulkInviteRequest,
    ExtendRequest,
    InviteLinkRequest,
    InviteRequest,
)
from taskflow.invitations.state import InvitationStatus, InvitationType
from taskflow.utils.helpers import envelope

router = APIRouter(tags=["Invitations"])


@router.post("/workspaces/{workspace_id}/invitations", status_code=status.HTTP_201_CREATED)
async def invite_to_workspace(
    workspace_id: str,
    req: InviteRequest,
    current_user: dict = Depends(get_current_user),
):
    result = await service.invite_to_workspace(
        workspace_id, current_user["id"], req.email, req.role, req.message
    )
    return envelope(result, "Invitation sent")


@router.post("/workspaces/{workspace_id}/invitations/bulk")
async def bulk_invite_to_workspace(
    workspace_id: str,
    req: BulkInviteRequest,
    current_user: dict = Depends(get_current_user),
):
    result = await service.bulk_invite(
        InvitationType.WORKSPACE, workspace_id, current_user["id"], req.emails, req.role, req.message
    )
    return envelope(result, f"{len(result['results'])} invitations sent")


@router.post("/workspaces/{workspace_id}/invite-link", status_code=status.HTTP_201_CREATED)
async def create_invite_link(
    workspace_id: str,
    req: InviteLinkRequest,
    current_user: dict = Depends(get_current_user),
):
    result = await service.create_invite_link(workspace_id, current_user["id"], req.role, req.expires_hours)
    return envelope(result, "Invite link created")


@router.get("/workspaces/{workspace_id}/invitations")
async def list_workspace_invitations(
    workspace_id: str,
    status: Optional[InvitationStatus] = None,
    current_user: dict = Depends(get_current_user),
):
    result = await service.list_for_entity(InvitationType.WORKSPACE, workspace_id, current_user["id"], status)
    return envelope(result, "Invitations retrieved")


@router.get("/workspaces/{workspace_id}/invitations/stats")
async def workspace_invitation_stats(
    workspace_id: str,
    current_user: dict = Depends(get_current_user),
):
    result = await service.stats_for_entity(InvitationType.WORKSPACE, workspace_id, current_user["id"])
    return envelope(result, "Invitation stats retrieved")


@router.post("/spaces/{space_id}/invitations", status_code=status.HTTP_201_CREATED)
async def invite_to_space(
    space_id: str,
    req: InviteRequest,
    current_user: dict = Depends(get_current_user),
):
    result = await service.invite_to_space(space_id, current_user["id"], req.email, req.role, req.message)
    return envelope(result, "Invitation sent")


@router.post("/spaces/{space_id}/invitations/bulk")
async def bulk_invite_to_space(
    space_id: str,
    req: BulkInviteRequest,
    current_user: dict = Depends(get_current_user),
):
    result = await service.bulk_invite(
        InvitationType.SPACE, space_id, current_user["id"], req.emails, req.role, req.message
    )
    return envelope(result, f"{len(result['results'])} invitations sent")


@router.get("/spaces/{space_id}/invitations")
async def list_space_invitations(
    space_id: str,
    status: Optional[InvitationStatus] = None,
    current_user: dict = Depends(get_current_user),
):
    result = await service.list_for_entity(InvitationType.SPACE, space_id, current_user["id"], status)
    return envelope(result, "Invitations retrieved")


@router.get("/invitations/me")
async def my_invitations(current_user: dict = Depends(get_current_user)):
    return envelope(await service.list_for_user(current_user), "Invitations retrieved")


@router.get("/invitations/token/{token}")
async def get_invitation(token: str):
    return envelope(await service.get_by_token(token), "Invitation retrieved")


@router.post("/invitations/token/{token}/accept")
async def accept_invitation(token: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.accept(token, current_user), "Invitation accepted")


@router.post("/invitations/token/{token}/decline")
async def decline_invitation(token: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.decline(token, current_user), "Invitation declined")


@router.post("/invitations/{invitation_id}/cancel")
async def cancel_invitation(invitation_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.cancel(invitation_id, current_user["id"]), "Invitation cancelled")


@router.post("/invitations/{invitation_id}/resend")
async def resend_invitation(invitation_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.resend(invitation_id, current_user["id"]), "Invitation resent")


@router.post("/invitations/{invitation_id}/extend")
async def extend_invitation(
    invitation_id: str,
    req: ExtendRequest,
    current_user: dict = Depends(get_current_user),
):
    result = await service.extend(invitation_id, current_user["id"], req.days)
    return envelope(result, "Invitation extended")
