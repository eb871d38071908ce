from fastapi import APIRouter, Depends, status

from taskflow.auth.dependencies import get_current_user
from taskflow.boards import service
from taskflow.boards.schemas import BoardCreate, BoardMemberRequest, BoardMemberUpdate, BoardUpdate
from taskflow.utils.helpers import envelope

router = APIRouter(tags=["Boards"])


@router.post("/spaces/{space_id}/boards", status_code=status.HTTP_201_CREATED)
async def create_board(
    space_id: str,
    req: BoardCreate,
    current_user: dict = Depends(get_current_user),
):
    result = await service.create_board(space_id, current_user["id"], req.model_dump())
    return envelope(result, "Board created")


@router.get("/spaces/{space_id}/boards")
async def list_boards(
    space_id: str,
    include_archived: bool = False,
    current_user: dict = Depends(get_current_user),
):
    result = await service.list_boards(space_id, current_user["id"], include_archived)
    return envelope(result, "Boards retrieved")


@router.get("/boards/{board_id}")
async def get_board(board_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.get_board(board_id, current_user["id"]), "Board retrieved")


@router.put("/boards/{board_id}")
async def update_board(
    board_id: str,
    req: BoardUpdate,
    current_user: dict = Depends(get_current_user),
):
    result = await service.update_board(board_id, current_user["id"], req.model_dump())
    return envelope(result, "Board updated")


@router.delete("/boards/{board_id}")
async def delete_board(board_id: str, current_user: dict = Depends(get_current_user)):
    await service.delete_board(board_id, current_user["id"])
    return envelope(None, "Board deleted")


@router.post("/boards/{board_id}/members", status_code=status.HTTP_201_CREATED)
async def add_member(
    board_id: str,
    req: BoardMemberRequest,
    current_user: dict = Depends(get_current_user),
):
    member = await service.add_member(board_id, current_user["id"], req.user_id, req.permissions)
    return envelope(member, "Board member added")


@router.patch("/boards/{board_id}/members/{user_id}")
async def update_member(
    board_id: str,
    user_id: str,
    req: BoardMemberUpdate,
    current_user: dict = Depends(get_current_user),
):
    member = await service.update_member(board_id, current_user["id"], user_id, req.permissions)
    return envelope(member, "Board member updated")


@router.delete("/boards/{board_id}/members/{user_id}")
async def remove_member(
    board_id: str,
    user_id: str,
    current_user: dict = Depends(get_current_user),
):
    await service.remove_member(board_id, current_user["id"], user_id)
    return envelope(None, "Board member removed")
