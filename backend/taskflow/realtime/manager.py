"""Room-based WebSocket fan-out for boards and per-user notification channels."""

import logging
from typing import Dict, Set

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


def board_room(board_id: str) -> str:
    return f"board:{board_id}"


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


class RealtimeManager:
    """Tracks open sockets per room and broadcasts JSON events to them."""

    def __init__(self):
        self.rooms: Dict[str, Set[WebSocket]] = {}
        self.presence: Dict[str, Dict[str, dict]] = {}  # room -> {conn_id: user}

    async def connect(self, room: str, websocket: WebSocket, user: dict) -> str:
        await websocket.accept()
        self.rooms.setdefault(room, set()).add(websocket)
        conn_id = str(id(websocket))
        self.presence.setdefault(room, {})[conn_id] = {
            "user_id": user.get("id", ""),
            "full_name": user.get("full_name", ""),
        }
        return conn_id

    def disconnect(self, room: str, websocket: WebSocket, conn_id: str):
        if room not in self.rooms:
            return None
        self.rooms[room].discard(websocket)
        info = self.presence.get(room, {}).pop(conn_id, None)
        if not self.rooms[room]:
            del self.rooms[room]
            self.presence.pop(room, None)
        return info

    def active_users(self, room: str) -> list:
        return list(self.presence.get(room, {}).values())

    async def broadcast(self, room: str, message: dict, exclude: WebSocket = None):
        if room not in self.rooms:
            return

        dead = []
        for ws in list(self.rooms[room]):
            if ws == exclude:
                continue
            try:
                if ws.client_state == WebSocketState.CONNECTED:
                    await ws.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                dead.append(ws)

        sockets = self.rooms.get(room, set())
        for ws in dead:
            logger.debug("Dropping dead socket from %s", room)
            sockets.discard(ws)

    async def emit(self, room: str, event: str, data: dict):
        await self.broadcast(room, {"type": event, "data": data})


manager = RealtimeManager()


async def emit_board_event(board_id: str, event: str, data: dict):
    await manager.emit(board_room(board_id), event, data)


async def emit_to_user(user_id: str, event: str, data: dict):
    await manager.emit(user_room(user_id), event, data)
