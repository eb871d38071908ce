from fastapi import APIRouter, Depends, Query

from taskflow.analytics import service
from taskflow.auth.dependencies import get_current_user
from taskflow.utils.helpers import envelope

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/workspaces/{workspace_id}")
async def workspace_analytics(
    workspace_id: str,
    timeframe: int = Query(default=30, ge=1, le=365),
    current_user: dict = Depends(get_current_user),
):
    result = await service.workspace_analytics(workspace_id, current_user["id"], timeframe)
    return envelope(result, "Workspace analytics retrieved")


@router.get("/boards/{board_id}")
async def board_analytics(board_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.board_analytics(board_id, current_user["id"]), "Board analytics retrieved")


@router.get("/me")
async def my_analytics(
    days: int = Query(default=30, ge=1, le=365),
    current_user: dict = Depends(get_current_user),
):
    return envelope(await service.user_analytics(current_user["id"], days), "User analytics retrieved")
