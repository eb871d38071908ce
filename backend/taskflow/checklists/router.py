from fastapi import APIRouter, Depends, status

from taskflow.auth.dependencies import get_current_user
from taskflow.checklists import service
from taskflow.checklists.schemas import (
    ChecklistCreate,
    ChecklistUpdate,
    ItemCreate,
    ItemReorder,
    ItemUpdate,
)
from taskflow.utils.helpers import envelope

router = APIRouter(tags=["Checklists"])


@router.get("/tasks/{task_id}/checklists")
async def list_checklists(task_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.list_checklists(task_id, current_user["id"]), "Checklists retrieved")


@router.post("/tasks/{task_id}/checklists", status_code=status.HTTP_201_CREATED)
async def create_checklist(
    task_id: str,
    req: ChecklistCreate,
    current_user: dict = Depends(get_current_user),
):
    checklist = await service.create_checklist(task_id, current_user["id"], req.model_dump())
    return envelope(checklist, "Checklist created")


@router.put("/checklists/{checklist_id}")
async def update_checklist(
    checklist_id: str,
    req: ChecklistUpdate,
    current_user: dict = Depends(get_current_user),
):
    checklist = await service.update_checklist(checklist_id, current_user["id"], req.model_dump())
    return envelope(checklist, "Checklist updated")


@router.delete("/checklists/{checklist_id}")
async def delete_checklist(checklist_id: str, current_user: dict = Depends(get_current_user)):
    await service.delete_checklist(checklist_id, current_user["id"])
    return envelope(None, "Checklist deleted")


@router.post("/checklists/{checklist_id}/items", status_code=status.HTTP_201_CREATED)
async def add_item(
    checklist_id: str,
    req: ItemCreate,
    current_user: dict = Depends(get_current_user),
):
    checklist = await service.add_item(checklist_id, current_user["id"], req.model_dump())
    return envelope(checklist, "Item added")


@router.put("/checklists/{checklist_id}/items/reorder")
async def reorder_items(
    checklist_id: str,
    req: ItemReorder,
    current_user: dict = Depends(get_current_user),
):
    checklist = await service.reorder_items(checklist_id, current_user["id"], req.ordered_ids)
    return envelope(checklist, "Items reordered")


@router.patch("/checklists/{checklist_id}/items/{item_id}")
async def update_item(
    checklist_id: str,
    item_id: str,
    req: ItemUpdate,
    current_user: dict = Depends(get_current_user),
):
    checklist = await service.update_item(
        checklist_id, item_id, current_user["id"], req.model_dump(exclude_unset=True)
    )
    return envelope(checklist, "Item updated")


@router.delete("/checklists/{checklist_id}/items/{item_id}")
async def delete_item(
    checklist_id: str,
    item_id: str,
    current_user: dict = Depends(get_current_user),
):
    checklist = await service.delete_item(checklist_id, item_id, current_user["id"])
    return envelope(checklist, "Item deleted")
