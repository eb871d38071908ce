from fastapi import APIRouter, Depends, status

from taskflow.auth.dependencies import get_current_user
from taskflow.columns import service
from taskflow.columns.schemas import ColumnCreate, ColumnUpdate, ReorderRequest
from taskflow.utils.helpers import envelope

router = APIRouter(tags=["Columns"])


@router.post("/boards/{board_id}/columns", status_code=status.HTTP_201_CREATED)
async def create_column(
    board_id: str,
    req: ColumnCreate,
    current_user: dict = Depends(get_current_user),
):
    column = await service.create_column(board_id, current_user["id"], req.model_dump())
    return envelope(column, "Column created")


@router.put("/boards/{board_id}/columns/reorder")
async def reorder_columns(
    board_id: str,
    req: ReorderRequest,
    current_user: dict = Depends(get_current_user),
):
    columns = await service.reorder_columns(board_id, current_user["id"], req.ordered_ids)
    return envelope(columns, "Columns reordered")


@router.put("/columns/{column_id}")
async def update_column(
    column_id: str,
    req: ColumnUpdate,
    current_user: dict = Depends(get_current_user),
):
    column = await service.update_column(column_id, current_user["id"], req.model_dump())
    return envelope(column, "Column updated")


@router.delete("/columns/{column_id}")
async def delete_column(column_id: str, current_user: dict = Depends(get_current_user)):
    await service.delete_column(column_id, current_user["id"])
    return envelope(None, "Column deleted")


@router.put("/columns/{column_id}/tasks/reorder")
async def reorder_tasks(
    column_id: str,
    req: ReorderRequest,
    current_user: dict = Depends(get_current_user),
):
    column = await service.reorder_column_tasks(column_id, current_user["id"], req.ordered_ids)
    return envelope(column, "Tasks reordered")
