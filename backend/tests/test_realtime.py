"""Tests for room broadcasts in the realtime manager."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketState

from taskflow.realtime.manager import RealtimeManager, board_room


def _socket(send=None):
    ws = MagicMock()
    ws.client_state = WebSocketState.CONNECTED
    ws.send_json = AsyncMock(side_effect=send)
    return ws


@pytest.mark.asyncio
async def test_broadcast_survives_join_during_send():
    manager = RealtimeManager()
    room = board_room("b1")
    newcomer = _socket()

    async def join_mid_send(message):
        manager.rooms[room].add(newcomer)

    sender = _socket(join_mid_send)
    manager.rooms[room] = {sender}

    await manager.emit(room, "task:updated", {"id": "t1"})

    sender.send_json.assert_awaited_once_with({"type": "task:updated", "data": {"id": "t1"}})
    assert manager.rooms[room] == {sender, newcomer}


@pytest.mark.asyncio
async def test_broadcast_survives_room_closing_during_send():
    manager = RealtimeManager()
    room = board_room("b1")

    async def close_room(message):
        manager.rooms.pop(room)
        raise RuntimeError("socket closed")

    manager.rooms[room] = {_socket(close_room)}
    await manager.emit(room, "task:deleted", {"id": "t1"})
    assert room not in manager.rooms


@pytest.mark.asyncio
async def test_dead_socket_is_dropped_and_sender_excluded():
    manager = RealtimeManager()
    room = board_room("b1")
    dead = _socket(RuntimeError("gone"))
    origin = _socket()
    manager.rooms[room] = {dead, origin}

    await manager.broadcast(room, {"type": "ping"}, exclude=origin)

    origin.send_json.assert_not_awaited()
    assert manager.rooms[room] == {origin}
