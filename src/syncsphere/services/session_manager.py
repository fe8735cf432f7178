"""Registry of recovery runs currently owned by this process.

Entries live only for the process lifetime. A restart loses pause/cancel
coordination for runs that were in flight.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

PAUSED = "paused"
CANCELLED = "cancelled"


class CancellationToken:
    """Stop signal checked by the phase loop at every step boundary."""

    def __init__(self) -> None:
        self._reason: Optional[str] = None

    def pause(self) -> None:
        if self._reason is None:
            self._reason = PAUSED

    def cancel(self) -> None:
        self._reason = CANCELLED

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    @property
    def stop_requested(self) -> bool:
        return self._reason is not None

    @property
    def is_paused(self) -> bool:
        return self._reason == PAUSED

    @property
    def is_cancelled(self) -> bool:
        return self._reason == CANCELLED


@dataclass
class ActiveScan:
    session_id: str
    user_id: str
    start_time: float
    token: CancellationToken = field(default_factory=CancellationToken)
    current_phase: str = "scanning"
    task: Optional[asyncio.Task] = None

    @property
    def paused(self) -> bool:
        return self.token.is_paused


class RecoverySessionManager:
    """Owns the active-scan map and the task handle of every run."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._scans: Dict[str, ActiveScan] = {}
        self._tasks: Set[asyncio.Task] = set()

    def launch(
        self,
        session_id: str,
        user_id: str,
        runner: Callable[[ActiveScan], Awaitable[Any]],
    ) -> ActiveScan:
        """Register a new run for ``session_id`` and start ``runner`` as a detached task.

        A previous run for the same session is told to stop; it exits at its
        next step boundary without touching the new entry.
        """
        previous = self._scans.get(session_id)
        if previous is not None:
            previous.token.cancel()

        scan = ActiveScan(session_id=session_id, user_id=user_id, start_time=self._clock())
        self._scans[session_id] = scan
        scan.task = asyncio.create_task(runner(scan), name=f"recovery-{session_id}")
        self._tasks.add(scan.task)
        scan.task.add_done_callback(self._on_task_done)
        return scan

    def get(self, session_id: str) -> Optional[ActiveScan]:
        return self._scans.get(session_id)

    def pause(self, session_id: str) -> bool:
        scan = self._scans.get(session_id)
        if scan is None:
            return False
        scan.token.pause()
        return True

    def cancel(self, session_id: str) -> bool:
        scan = self._scans.pop(session_id, None)
        if scan is None:
            return False
        scan.token.cancel()
        return True

    def release(self, scan: ActiveScan) -> bool:
        """Drop ``scan`` if it is still the registered run for its session."""
        if self._scans.get(scan.session_id) is scan:
            del self._scans[scan.session_id]
            return True
        return False

    def elapsed(self, session_id: str) -> Optional[float]:
        scan = self._scans.get(session_id)
        return self._clock() - scan.start_time if scan else None

    def active_ids(self) -> List[str]:
        return list(self._scans)

    @property
    def running_count(self) -> int:
        return sum(1 for scan in self._scans.values() if not scan.paused)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._scans

    def __len__(self) -> int:
        return len(self._scans)

    async def wait_idle(self) -> None:
        """Wait until every launched task has finished."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        for scan in self._scans.values():
            scan.token.cancel()
        self._scans.clear()

        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Recovery task %s crashed", task.get_name(), exc_info=exc)
