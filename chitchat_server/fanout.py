"""Real-time notification fan-out over WebSockets, grouped into rooms."""

import asyncio
import logging
from typing import Any

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks connected sockets and the rooms they joined.

    Rooms are either a user's e-mail (personal events) or a friend-edge id
    (a chat thread). Membership only changes on connect/disconnect and on
    explicit join/leave signals from the client.
    """

    def __init__(self):
        self.active_connections: set[WebSocket] = set()
        self.rooms: dict[str, set[WebSocket]] = {}
        self._pending: set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.add(websocket)

    def disconnect(self, websocket: WebSocket):
        self.active_connections.discard(websocket)
        for room_id in list(self.rooms):
            self.leave(room_id, websocket)

    def join(self, room_id: str, websocket: WebSocket):
        self.rooms.setdefault(room_id, set()).add(websocket)
        logger.debug(f"Socket joined room {room_id}")

    def leave(self, room_id: str, websocket: WebSocket):
        members = self.rooms.get(room_id)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[room_id]

    def emit_to_room(self, room_id: str, event: str, payload: Any):
        """Schedule delivery of an event to every socket in a room."""
        targets = list(self.rooms.get(room_id, ()))
        self._schedule(targets, {"event": event, "data": jsonable_encoder(payload)})

    def emit_broadcast(self, event: str, payload: Any):
        """Schedule delivery of an event to every connected socket."""
        self._schedule(list(self.active_connections), {"event": event, "data": jsonable_encoder(payload)})

    def _schedule(self, targets: list[WebSocket], message: dict):
        if not targets:
            return
        task = asyncio.create_task(self._deliver(targets, message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, targets: list[WebSocket], message: dict):
        for websocket in targets:
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.warning(f"Dropping socket after failed '{message['event']}' delivery: {e}")
                self.disconnect(websocket)

    async def drain(self):
        """Wait for all scheduled deliveries to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
