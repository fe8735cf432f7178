"""Simulated recovery engine.

A run walks three fixed phases (scanning, analyzing, recovering), each owning
a band of the overall progress. Every step is persisted before the next one
starts; a refused write means the session was moved by someone else and the
run stops without touching it.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from syncsphere.database.redis_manager import CacheManager
from syncsphere.database.store import Store
from syncsphere.exceptions import NotFoundError
from syncsphere.models import RecoverySession
from syncsphere.models.base import utcnow
from syncsphere.services.cache import recovery_key
from syncsphere.services.events import (
    EventPublisher,
    RecoveryCompleted,
    RecoveryFailed,
    RecoveryProgress,
)
from syncsphere.services.session_manager import ActiveScan, RecoverySessionManager

logger = logging.getLogger(__name__)

SCANNING = "scanning"
ANALYZING = "analyzing"
RECOVERING = "recovering"

COMPLETED = "completed"
STOPPED = "stopped"
FAILED = "failed"

RECOVERABLE_RATIO = 0.8
FAILED_RATIO = 0.1


@dataclass(frozen=True)
class Phase:
    name: str
    steps: int
    delay: float
    start: int
    end: int

    def progress_at(self, step: int) -> int:
        return self.start + (step * (self.end - self.start)) // self.steps


PHASES = (
    Phase(SCANNING, steps=20, delay=2.0, start=0, end=30),
    Phase(ANALYZING, steps=10, delay=1.5, start=30, end=50),
    Phase(RECOVERING, steps=50, delay=1.0, start=50, end=100),
)

# extension, max count, max total size in bytes
FILE_TYPES = (
    ("jpg", 200, 1_000_000),
    ("png", 150, 800_000),
    ("mp4", 50, 5_000_000),
    ("pdf", 100, 2_000_000),
    ("docx", 80, 500_000),
    ("xlsx", 60, 300_000),
)


class RecoveryPhaseSimulator:
    """Drives one recovery run through the three phases."""

    def __init__(
        self,
        store: Store,
        cache: CacheManager,
        events: EventPublisher,
        sessions: RecoverySessionManager,
        *,
        phases: Sequence[Phase] = PHASES,
        delay_scale: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.cache = cache
        self.events = events
        self.sessions = sessions
        self.phases = tuple(phases)
        self.delay_scale = max(0.0, delay_scale)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock
        self._step_builders = {
            SCANNING: self._scanning_step,
            ANALYZING: self._analyzing_step,
            RECOVERING: self._recovering_step,
        }

    async def run(self, scan: ActiveScan) -> str:
        session_id = scan.session_id
        try:
            session = self.store.find_session(session_id)
            if session is None:
                raise NotFoundError("Recovery session not found")

            total_files = self._rng.randint(100, 1099)
            file_types = self._file_types()

            for phase in self.phases:
                if scan.token.stop_requested:
                    return self._stopped(scan)

                scan.current_phase = phase.name
                session = self.store.start_session(session_id)
                if session is None:
                    return self._stopped(scan)

                session = await self._run_phase(phase, session, scan, total_files, file_types)
                if session is None:
                    return self._stopped(scan)

            completed = self.store.complete_session(session_id)
            if completed is None:
                return self._stopped(scan)

            self.sessions.release(scan)
            self.cache.delete(recovery_key(session_id))
            self.events.publish(RecoveryCompleted(
                recovery_id=session_id,
                user_id=completed.user_id,
                success_rate=completed.success_rate,
            ))
            logger.info("Recovery completed: %s (success rate %.2f)", session_id, completed.success_rate)
            return COMPLETED

        except Exception as exc:
            logger.exception("Error processing recovery %s", session_id)
            self._fail(scan, str(exc) or exc.__class__.__name__)
            return FAILED

    async def _run_phase(
        self,
        phase: Phase,
        session: RecoverySession,
        scan: ActiveScan,
        total_files: int,
        file_types: List[Dict[str, Any]],
    ) -> Optional[RecoverySession]:
        build_step = self._step_builders[phase.name]
        delay = phase.delay * self.delay_scale

        for step in range(1, phase.steps + 1):
            if scan.token.stop_requested:
                return None

            updates = build_step(phase, step, session, total_files, file_types)
            updated = self.store.update_session_progress(
                session.id, phase.progress_at(step), **updates)
            if updated is None:
                return None
            session = updated

            self.cache.delete(recovery_key(session.id))
            self.events.publish(RecoveryProgress(
                recovery_id=session.id,
                user_id=session.user_id,
                phase=phase.name,
                progress=session.progress,
                total_files=session.total_files,
                recovered_files=session.recovered_files,
                failed_files=session.failed_files,
            ))
            await self._sleep(delay)

        return session

    # ------------------------------------------------------------------
    # Per-phase step payloads
    # ------------------------------------------------------------------
    def _scanning_step(self, phase, step, session, total_files, file_types) -> Dict[str, Any]:
        found = (total_files * step) // phase.steps
        return {
            "total_files": total_files,
            "scan_results": {
                "scanned_sectors": step * 1000,
                "found_files": found,
                "corrupted_files": int(found * FAILED_RATIO),
                "file_types": file_types,
            },
        }

    def _analyzing_step(self, phase, step, session, total_files, file_types) -> Dict[str, Any]:
        total = session.total_files
        return {
            "scan_results": {
                **session.scan_results,
                "analyzed_files": (total * step) // phase.steps,
                "recoverable_files": int(total * RECOVERABLE_RATIO),
            },
        }

    def _recovering_step(self, phase, step, session, total_files, file_types) -> Dict[str, Any]:
        total = session.total_files
        recoverable = int(total * RECOVERABLE_RATIO)
        remaining = (phase.steps - step) * phase.delay * self.delay_scale
        return {
            "recovered_files": (recoverable * step) // phase.steps,
            "failed_files": (total * step) // (phase.steps * 10),
            "estimated_completion": self._clock() + timedelta(seconds=remaining),
        }

    def _file_types(self) -> List[Dict[str, Any]]:
        types = []
        for extension, max_count, max_size in FILE_TYPES:
            count = self._rng.randrange(max_count)
            if count > 0:
                types.append({
                    "extension": extension,
                    "count": count,
                    "total_size": self._rng.randrange(max_size),
                })
        return types

    # ------------------------------------------------------------------
    # Exits
    # ------------------------------------------------------------------
    def _stopped(self, scan: ActiveScan) -> str:
        # Paused runs keep their registry entry until resumed.
        if not scan.token.is_paused:
            self.sessions.release(scan)
        logger.info("Recovery %s stopped (%s)", scan.session_id, scan.token.reason or "status changed")
        return STOPPED

    def _fail(self, scan: ActiveScan, message: str) -> None:
        try:
            self.store.mark_session_failed(scan.session_id, message)
        except Exception:
            logger.exception("Error updating failed recovery %s", scan.session_id)

        self.sessions.release(scan)
        self.cache.delete(recovery_key(scan.session_id))
        self.events.publish(RecoveryFailed(
            recovery_id=scan.session_id,
            user_id=scan.user_id,
            error=message,
        ))
