from fastapi import APIRouter, Depends, status

from taskflow.auth.dependencies import get_current_user
from taskflow.tasks import service
from taskflow.tasks.schemas import (
    DependencyCreate,
    TaskCreate,
    TaskFilters,
    TaskMove,
    TaskUpdate,
    WatcherRequest,
)
from taskflow.utils.helpers import envelope

router = APIRouter(tags=["Tasks"])


@router.post("/boards/{board_id}/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(
    board_id: str,
    req: TaskCreate,
    current_user: dict = Depends(get_current_user),
):
    task = await service.create_task(board_id, current_user["id"], req.model_dump())
    return envelope(task, "Task created")


@router.get("/boards/{board_id}/tasks")
async def list_tasks(
    board_id: str,
    filters: TaskFilters = Depends(),
    current_user: dict = Depends(get_current_user),
):
    tasks = await service.list_tasks(board_id, current_user["id"], filters.model_dump())
    return envelope(tasks, "Tasks retrieved")


@router.get("/tasks/overdue")
async def list_overdue(current_user: dict = Depends(get_current_user)):
    return envelope(await service.list_overdue(current_user["id"]), "Overdue tasks retrieved")


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.get_task(task_id, current_user["id"]), "Task retrieved")


@router.put("/tasks/{task_id}")
async def update_task(
    task_id: str,
    req: TaskUpdate,
    current_user: dict = Depends(get_current_user),
):
    task = await service.update_task(task_id, current_user["id"], req.model_dump(exclude_unset=True))
    return envelope(task, "Task updated")


@router.patch("/tasks/{task_id}/move")
async def move_task(
    task_id: str,
    req: TaskMove,
    current_user: dict = Depends(get_current_user),
):
    task = await service.move_task(task_id, current_user["id"], req.column_id, req.position)
    return envelope(task, "Task moved")


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, current_user: dict = Depends(get_current_user)):
    await service.delete_task(task_id, current_user["id"])
    return envelope(None, "Task deleted")


@router.post("/tasks/{task_id}/watchers")
async def add_watcher(
    task_id: str,
    req: WatcherRequest,
    current_user: dict = Depends(get_current_user),
):
    return envelope(await service.add_watcher(task_id, current_user["id"], req.user_id), "Watcher added")


@router.delete("/tasks/{task_id}/watchers/{user_id}")
async def remove_watcher(
    task_id: str,
    user_id: str,
    current_user: dict = Depends(get_current_user),
):
    return envelope(await service.remove_watcher(task_id, current_user["id"], user_id), "Watcher removed")


@router.post("/tasks/{task_id}/dependencies", status_code=status.HTTP_201_CREATED)
async def add_dependency(
    task_id: str,
    req: DependencyCreate,
    current_user: dict = Depends(get_current_user),
):
    task = await service.add_dependency(task_id, current_user["id"], req.task_id, req.type)
    return envelope(task, "Dependency added")


@router.delete("/tasks/{task_id}/dependencies/{depends_on}")
async def remove_dependency(
    task_id: str,
    depends_on: str,
    current_user: dict = Depends(get_current_user),
):
    task = await service.remove_dependency(task_id, current_user["id"], depends_on)
    return envelope(task, "Dependency removed")


@router.post("/tasks/{task_id}/time/start")
async def start_time(task_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.start_time_tracking(task_id, current_user["id"]), "Time tracking started")


@router.post("/tasks/{task_id}/time/stop")
async def stop_time(task_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.stop_time_tracking(task_id, current_user["id"]), "Time tracking stopped")


@router.get("/tasks/{task_id}/history")
async def task_history(task_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.task_history(task_id, current_user["id"]), "Task history retrieved")
