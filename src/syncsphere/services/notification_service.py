from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from syncsphere.database.store import Store
from syncsphere.exceptions import NotFoundError
from syncsphere.models import Notification
from syncsphere.services.events import EventBus, RecoveryCompleted, RecoveryEvent, RecoveryFailed

logger = logging.getLogger(__name__)

Deliver = Callable[[Notification], Awaitable[Any]]


class NotificationService:
    """Per-user inbox fed by recovery completion and failure events."""

    def __init__(self, store: Store, events: Optional[EventBus] = None,
                 deliver: Optional[Deliver] = None) -> None:
        self.store = store
        self.events = events
        self.deliver = deliver
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    def create_notification(self, user_id: str, notification_type: str, title: str,
                            message: str, data: Optional[Dict[str, Any]] = None) -> Notification:
        notification = self.store.create_notification(user_id, notification_type, title, message, data)
        logger.debug("Notification %s created for %s", notification.id, user_id)
        return notification

    def list_notifications(self, user_id: str, *, unread_only: bool = False,
                           limit: int = 50, offset: int = 0) -> List[Notification]:
        limit = max(1, min(limit, 100))
        return self.store.list_notifications(
            user_id, unread_only=unread_only, limit=limit, offset=max(0, offset))

    def mark_read(self, notification_id: str, user_id: str) -> None:
        if not self.store.mark_notification_read(notification_id, user_id):
            raise NotFoundError("Notification not found")

    def mark_all_read(self, user_id: str) -> int:
        return self.store.mark_all_notifications_read(user_id)

    def unread_count(self, user_id: str) -> int:
        return self.store.count_unread_notifications(user_id)

    def handle_event(self, event: RecoveryEvent) -> Optional[Notification]:
        if isinstance(event, RecoveryCompleted):
            return self.create_notification(
                event.user_id,
                "recovery_completed",
                "Recovery completed",
                f"Recovery finished with {event.success_rate:.0%} of files recovered.",
                {"recovery_id": event.recovery_id, "success_rate": event.success_rate},
            )
        if isinstance(event, RecoveryFailed):
            return self.create_notification(
                event.user_id,
                "recovery_failed",
                "Recovery failed",
                f"Recovery could not be completed: {event.error}",
                {"recovery_id": event.recovery_id, "error": event.error},
            )
        return None

    async def run(self, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                notification = self.handle_event(event)
                if notification is not None and self.deliver is not None:
                    await self.deliver(notification)
            except Exception:
                logger.exception("Failed to create notification for %s", event.name)

    def start(self) -> None:
        if self.events is None or self._task is not None:
            return
        self._queue = self.events.subscribe()
        self._task = asyncio.create_task(self.run(self._queue), name="notifications")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        if self.events is not None and self._queue is not None:
            self.events.unsubscribe(self._queue)
        self._task = None
        self._queue = None
