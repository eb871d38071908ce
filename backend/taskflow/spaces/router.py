from fastapi import APIRouter, Depends, status

from taskflow.auth.dependencies import get_current_user
from taskflow.spaces import service
from taskflow.spaces.schemas import SpaceCreate, SpaceMemberRequest, SpaceRoleUpdate, SpaceUpdate
from taskflow.utils.helpers import envelope

router = APIRouter(tags=["Spaces"])


@router.post("/workspaces/{workspace_id}/spaces", status_code=status.HTTP_201_CREATED)
async def create_space(
    workspace_id: str,
    req: SpaceCreate,
    current_user: dict = Depends(get_current_user),
):
    result = await service.create_space(workspace_id, current_user["id"], req.model_dump())
    return envelope(result, "Space created")


@router.get("/workspaces/{workspace_id}/spaces")
async def list_spaces(
    workspace_id: str,
    include_archived: bool = False,
    current_user: dict = Depends(get_current_user),
):
    result = await service.list_spaces(workspace_id, current_user["id"], include_archived)
    return envelope(result, "Spaces retrieved")


@router.get("/spaces/{space_id}")
async def get_space(space_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.get_space(space_id, current_user["id"]), "Space retrieved")


@router.put("/spaces/{space_id}")
async def update_space(
    space_id: str,
    req: SpaceUpdate,
    current_user: dict = Depends(get_current_user),
):
    result = await service.update_space(space_id, current_user["id"], req.model_dump(exclude_none=True))
    return envelope(result, "Space updated")


@router.delete("/spaces/{space_id}")
async def delete_space(space_id: str, current_user: dict = Depends(get_current_user)):
    await service.delete_space(space_id, current_user["id"])
    return envelope(None, "Space deleted")


@router.post("/spaces/{space_id}/archive")
async def archive_space(space_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.archive_space(space_id, current_user["id"]), "Space archived")


@router.post("/spaces/{space_id}/unarchive")
async def unarchive_space(space_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.unarchive_space(space_id, current_user["id"]), "Space restored")


@router.get("/spaces/{space_id}/members")
async def get_members(space_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.get_members(space_id, current_user["id"]), "Members retrieved")


@router.post("/spaces/{space_id}/members", status_code=status.HTTP_201_CREATED)
async def add_member(
    space_id: str,
    req: SpaceMemberRequest,
    current_user: dict = Depends(get_current_user),
):
    member = await service.add_member_by_email(space_id, current_user["id"], req.email, req.role)
    return envelope(member, "Member added")


@router.patch("/spaces/{space_id}/members/{user_id}")
async def update_member_role(
    space_id: str,
    user_id: str,
    req: SpaceRoleUpdate,
    current_user: dict = Depends(get_current_user),
):
    member = await service.update_member_role(space_id, user_id, req.role, current_user["id"])
    return envelope(member, "Member role updated")


@router.delete("/spaces/{space_id}/members/{user_id}")
async def remove_member(
    space_id: str,
    user_id: str,
    current_user: dict = Depends(get_current_user),
):
    await service.remove_member(space_id, user_id, current_user["id"])
    return envelope(None, "Member removed")
