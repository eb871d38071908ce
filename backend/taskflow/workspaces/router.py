from fastapi import APIRouter, Depends, status

from taskflow.auth.dependencies import get_current_user
from taskflow.utils.helpers import envelope
from taskflow.workspaces import service
from taskflow.workspaces.schemas import (
    AddMemberRequest,
    TransferOwnershipRequest,
    UpdateMemberRoleRequest,
    WorkspaceCreate,
    WorkspaceSettings,
    WorkspaceUpdate,
)

router = APIRouter(prefix="/workspaces", tags=["Workspaces"])


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_workspace(
    req: WorkspaceCreate,
    current_user: dict = Depends(get_current_user),
):
    result = await service.create_workspace(req.name, req.description, current_user["id"])
    return envelope(result, "Workspace created")


@router.get("/")
async def list_workspaces(
    include_archived: bool = False,
    current_user: dict = Depends(get_current_user),
):
    result = await service.list_workspaces(current_user["id"], include_archived)
    return envelope(result, "Workspaces retrieved")


@router.get("/{workspace_id}")
async def get_workspace(
    workspace_id: str,
    current_user: dict = Depends(get_current_user),
):
    return envelope(await service.get_workspace(workspace_id, current_user["id"]), "Workspace retrieved")


@router.put("/{workspace_id}")
async def update_workspace(
    workspace_id: str,
    req: WorkspaceUpdate,
    current_user: dict = Depends(get_current_user),
):
    result = await service.update_workspace(workspace_id, current_user["id"], req.model_dump())
    return envelope(result, "Workspace updated")


@router.patch("/{workspace_id}/settings")
async def update_settings(
    workspace_id: str,
    req: WorkspaceSettings,
    current_user: dict = Depends(get_current_user),
):
    result = await service.update_settings(workspace_id, current_user["id"], req.model_dump())
    return envelope(result, "Workspace settings updated")


@router.post("/{workspace_id}/archive")
async def archive_workspace(
    workspace_id: str,
    current_user: dict = Depends(get_current_user),
):
    return envelope(await service.archive_workspace(workspace_id, current_user["id"]), "Workspace archived")


@router.post("/{workspace_id}/restore")
async def restore_workspace(
    workspace_id: str,
    current_user: dict = Depends(get_current_user),
):
    return envelope(await service.restore_workspace(workspace_id, current_user["id"]), "Workspace restored")


@router.delete("/{workspace_id}")
async def delete_workspace(
    workspace_id: str,
    current_user: dict = Depends(get_current_user),
):
    await service.delete_workspace(workspace_id, current_user["id"])
    return envelope(None, "Workspace deleted")


@router.get("/{workspace_id}/members")
async def get_members(
    workspace_id: str,
    current_user: dict = Depends(get_current_user),
):
    return envelope(await service.get_members(workspace_id, current_user["id"]), "Members retrieved")


@router.post("/{workspace_id}/members", status_code=status.HTTP_201_CREATED)
async def add_member(
    workspace_id: str,
    req: AddMemberRequest,
    current_user: dict = Depends(get_current_user),
):
    member = await service.add_member_by_email(workspace_id, current_user["id"], req.email, req.role)
    return envelope(member, "Member added")


@router.patch("/{workspace_id}/members/{user_id}")
async def update_member_role(
    workspace_id: str,
    user_id: str,
    req: UpdateMemberRoleRequest,
    current_user: dict = Depends(get_current_user),
):
    member = await service.update_member_role(workspace_id, user_id, req.role, current_user["id"])
    return envelope(member, "Member role updated")


@router.delete("/{workspace_id}/members/{user_id}")
async def remove_member(
    workspace_id: str,
    user_id: str,
    current_user: dict = Depends(get_current_user),
):
    await service.remove_member(workspace_id, user_id, current_user["id"])
    return envelope(None, "Member removed")


@router.post("/{workspace_id}/transfer-ownership")
async def transfer_ownership(
    workspace_id: str,
    req: TransferOwnershipRequest,
    current_user: dict = Depends(get_current_user),
):
    result = await service.transfer_ownership(workspace_id, req.new_owner_id, current_user["id"])
    return envelope(result, "Ownership transferred")
