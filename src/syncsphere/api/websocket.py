"""WebSocket fan-out for recovery progress and user notifications.

Clients join rooms by message: ``recovery_<id>`` for a session's progress
and ``user_<id>`` for their notification inbox.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from fastapi import WebSocket

from syncsphere.models import Notification
from syncsphere.services.events import EventBus, RecoveryEvent, to_message

logger = logging.getLogger(__name__)

# (user_id, recovery_id) -> may this user follow that session
Authorize = Callable[[str, str], Awaitable[bool]]


def recovery_room(recovery_id: str) -> str:
    return f"recovery_{recovery_id}"


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


class ConnectionHub:
    def __init__(self, events: Optional[EventBus] = None) -> None:
        self.events = events
        self._clients: Dict[WebSocket, str] = {}
        self._rooms: Dict[str, Set[WebSocket]] = {}
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket, user_id: str) -> None:
        await websocket.accept()
        self._clients[websocket] = user_id
        logger.info("WebSocket client connected (user=%s)", user_id)
        await self._send(websocket, {
            "type": "connected",
            "data": {"user_id": user_id, "timestamp": _now_ms()},
        })

    def disconnect(self, websocket: WebSocket) -> None:
        user_id = self._clients.pop(websocket, None)
        for room in list(self._rooms):
            members = self._rooms[room]
            members.discard(websocket)
            if not members:
                del self._rooms[room]
        if user_id is not None:
            logger.info("WebSocket client disconnected (user=%s)", user_id)

    def join(self, websocket: WebSocket, room: str) -> None:
        self._rooms.setdefault(room, set()).add(websocket)

    def leave(self, websocket: WebSocket, room: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self._rooms[room]

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    async def send_room(self, room: str, message: Dict[str, Any]) -> int:
        sent = 0
        for websocket in list(self._rooms.get(room, ())):
            if await self._send(websocket, message):
                sent += 1
        return sent

    async def send_to_user(self, notification: Notification) -> int:
        return await self.send_room(user_room(notification.user_id), {
            "type": "notification",
            "data": notification.to_dict(),
        })

    async def broadcast_event(self, event: RecoveryEvent) -> int:
        return await self.send_room(recovery_room(event.recovery_id), to_message(event))

    async def handle_message(self, websocket: WebSocket, message: Dict[str, Any],
                             authorize: Optional[Authorize] = None) -> None:
        user_id = self._clients.get(websocket)
        if user_id is None:
            return

        kind = message.get("type")
        if kind == "heartbeat":
            await self._send(websocket, {"type": "heartbeat_ack", "data": {"timestamp": _now_ms()}})

        elif kind == "subscribe_recovery_updates":
            recovery_id = message.get("sessionId")
            if not recovery_id:
                await self._error(websocket, "sessionId is required")
                return
            if authorize is not None and not await authorize(user_id, recovery_id):
                await self._error(websocket, "Recovery session not found")
                return
            self.join(websocket, recovery_room(recovery_id))
            await self._send(websocket, {"type": "subscribed", "data": {"room": recovery_room(recovery_id)}})

        elif kind == "unsubscribe_recovery_updates":
            recovery_id = message.get("sessionId")
            if recovery_id:
                self.leave(websocket, recovery_room(recovery_id))

        elif kind == "subscribe_notifications":
            self.join(websocket, user_room(user_id))
            await self._send(websocket, {"type": "subscribed", "data": {"room": user_room(user_id)}})

        else:
            await self._error(websocket, f"Unknown message type: {kind}")

    async def run(self, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                await self.broadcast_event(event)
            except Exception:
                logger.exception("Failed to forward %s", event.name)

    def start(self) -> None:
        if self.events is None or self._task is not None:
            return
        self._queue = self.events.subscribe()
        self._task = asyncio.create_task(self.run(self._queue), name="websocket-hub")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.events is not None and self._queue is not None:
            self.events.unsubscribe(self._queue)
            self._queue = None

        for websocket in list(self._clients):
            self.disconnect(websocket)

    async def _send(self, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as exc:
            logger.warning("Dropping WebSocket client after send failure: %s", exc)
            self.disconnect(websocket)
            return False

    async def _error(self, websocket: WebSocket, message: str) -> None:
        await self._send(websocket, {"type": "error", "data": {"error": message}})


def _now_ms() -> int:
    return int(time.time() * 1000)
