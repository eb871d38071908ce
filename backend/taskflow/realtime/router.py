"""WebSocket endpoints: board rooms with presence, and per-user notifications."""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from taskflow.auth.dependencies import user_from_token
from taskflow.boards.service import board_context
from taskflow.realtime.manager import board_room, manager, user_room
from taskflow.utils.errors import TaskFlowError
from taskflow.utils.helpers import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()


async def _authenticate(websocket: WebSocket):
    token = websocket.query_params.get("token", "")
    user = await user_from_token(token)
    if user is None:
        await websocket.close(code=4001, reason="Authentication required")
    return user


async def _keepalive(websocket: WebSocket, data: dict) -> bool:
    if data.get("type") == "ping":
        await websocket.send_json({"type": "pong", "timestamp": utc_now().isoformat()})
        return True
    return False


@router.websocket("/ws/boards/{board_id}")
async def board_updates(websocket: WebSocket, board_id: str):
    user = await _authenticate(websocket)
    if user is None:
        return
    try:
        await board_context(board_id, user["id"])
    except TaskFlowError as exc:
        await websocket.close(code=4003, reason=exc.message)
        return

    room = board_room(board_id)
    conn_id = await manager.connect(room, websocket, user)
    await manager.broadcast(room, {
        "type": "user_join",
        "user": {"user_id": user["id"], "full_name": user.get("full_name", "")},
        "active_users": manager.active_users(room),
    })

    try:
        while True:
            data = await websocket.receive_json()
            if await _keepalive(websocket, data):
                continue
            if data.get("type") == "presence":
                await websocket.send_json({"type": "presence", "active_users": manager.active_users(room)})
    except WebSocketDisconnect:
        logger.debug("Board socket closed for user %s on %s", user["id"], board_id)
    finally:
        info = manager.disconnect(room, websocket, conn_id)
        if info:
            await manager.broadcast(room, {
                "type": "user_leave",
                "user": info,
                "active_users": manager.active_users(room),
            })


@router.websocket("/ws/notifications")
async def notification_updates(websocket: WebSocket):
    user = await _authenticate(websocket)
    if user is None:
        return

    room = user_room(user["id"])
    conn_id = await manager.connect(room, websocket, user)
    try:
        while True:
            data = await websocket.receive_json()
            await _keepalive(websocket, data)
    except WebSocketDisconnect:
        logger.debug("Notification socket closed for user %s", user["id"])
    finally:
        manager.disconnect(room, websocket, conn_id)
