"""Outbound recovery events.

The recovery simulator publishes to an ``EventBus`` instead of talking to the
WebSocket layer directly. Consumers (the WebSocket hub, the notification
service, tests) subscribe and receive their own ``asyncio.Queue``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Dict, List, Protocol, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecoveryProgress:
    name: ClassVar[str] = "recovery_progress"

    recovery_id: str
    user_id: str
    phase: str
    progress: int
    total_files: int
    recovered_files: int
    failed_files: int


@dataclass(frozen=True)
class RecoveryCompleted:
    name: ClassVar[str] = "recovery_completed"

    recovery_id: str
    user_id: str
    success_rate: float


@dataclass(frozen=True)
class RecoveryFailed:
    name: ClassVar[str] = "recovery_failed"

    recovery_id: str
    user_id: str
    error: str


RecoveryEvent = Union[RecoveryProgress, RecoveryCompleted, RecoveryFailed]


def to_message(event: RecoveryEvent) -> Dict[str, Any]:
    """Wire shape used for WebSocket frames."""
    return {"type": event.name, "data": asdict(event)}


class EventPublisher(Protocol):
    def publish(self, event: RecoveryEvent) -> int:
        ...


class EventBus:
    """Fan-out of events to subscriber queues; ``publish`` never blocks."""

    def __init__(self, maxsize: int = 1000) -> None:
        self.maxsize = maxsize
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: RecoveryEvent) -> int:
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Dropping %s for a slow subscriber", event.name)
        return delivered
