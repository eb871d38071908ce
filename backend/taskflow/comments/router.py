from fastapi import APIRouter, Depends, status

from taskflow.auth.dependencies import get_current_user
from taskflow.comments import service
from taskflow.comments.schemas import CommentCreate, CommentUpdate, ReactionRequest
from taskflow.utils.helpers import envelope

router = APIRouter(tags=["Comments"])


@router.get("/tasks/{task_id}/comments")
async def list_comments(task_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.list_comments(task_id, current_user["id"]), "Comments retrieved")


@router.post("/tasks/{task_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    task_id: str,
    req: CommentCreate,
    current_user: dict = Depends(get_current_user),
):
    comment = await service.add_comment(task_id, current_user["id"], req.model_dump())
    return envelope(comment, "Comment added")


@router.put("/comments/{comment_id}")
async def edit_comment(
    comment_id: str,
    req: CommentUpdate,
    current_user: dict = Depends(get_current_user),
):
    return envelope(await service.edit_comment(comment_id, current_user["id"], req.content), "Comment updated")


@router.delete("/comments/{comment_id}")
async def delete_comment(comment_id: str, current_user: dict = Depends(get_current_user)):
    await service.delete_comment(comment_id, current_user["id"])
    return envelope(None, "Comment deleted")


@router.post("/comments/{comment_id}/reactions")
async def add_reaction(
    comment_id: str,
    req: ReactionRequest,
    current_user: dict = Depends(get_current_user),
):
    return envelope(await service.add_reaction(comment_id, current_user["id"], req.emoji), "Reaction added")


@router.delete("/comments/{comment_id}/reactions/{emoji}")
async def remove_reaction(
    comment_id: str,
    emoji: str,
    current_user: dict = Depends(get_current_user),
):
    return envelope(await service.remove_reaction(comment_id, current_user["id"], emoji), "Reaction removed")


@router.post("/comments/{comment_id}/pin")
async def toggle_pin(comment_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.toggle_pin(comment_id, current_user["id"]), "Comment pin toggled")


@router.post("/comments/{comment_id}/resolve")
async def toggle_resolve(comment_id: str, current_user: dict = Depends(get_current_user)):
    return envelope(await service.toggle_resolve(comment_id, current_user["id"]), "Comment resolve toggled")
