"""Recovery session service for SyncSphere.

Validates and starts recovery sessions, serves them through the cache, and
coordinates pause/resume/cancel with the runs owned by the session manager.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from syncsphere.database.redis_manager import CacheManager
from syncsphere.database.store import Store
from syncsphere.exceptions import (
    InvalidStateError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from syncsphere.models import RecoverySession, RecoveryStatus
from syncsphere.models.base import utcnow
from syncsphere.models.recovery_session import RECOVERY_OPTIONS
from syncsphere.services.cache import RECOVERY_TTL, read_through, recovery_key
from syncsphere.services.events import EventPublisher
from syncsphere.services.recovery_simulator import RecoveryPhaseSimulator
from syncsphere.services.session_manager import RecoverySessionManager

logger = logging.getLogger(__name__)


class DataRecoveryService:
    """High level service behind the ``/recovery`` routes."""

    def __init__(
        self,
        store: Store,
        cache: CacheManager,
        events: EventPublisher,
        *,
        sessions: Optional[RecoverySessionManager] = None,
        simulator: Optional[RecoveryPhaseSimulator] = None,
        max_concurrent_sessions: int = 2,
        delay_scale: float = 1.0,
    ) -> None:
        self.store = store
        self.cache = cache
        self.events = events
        self.sessions = sessions or RecoverySessionManager()
        self.simulator = simulator or RecoveryPhaseSimulator(
            store, cache, events, self.sessions, delay_scale=delay_scale)
        self.max_concurrent_sessions = max_concurrent_sessions

    # ------------------------------------------------------------------
    # Lifecycle of a session
    # ------------------------------------------------------------------
    async def start_recovery(
        self,
        user_id: str,
        device_id: str,
        recovery_type: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> RecoverySession:
        options = dict(options or {})

        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        device = self.store.find_device_by_id(device_id)
        if device is None or device.user_id != user_id:
            raise NotFoundError("Device not found or not owned by user")

        if not device.is_connected:
            raise InvalidStateError("Device must be connected to start recovery")

        if self.store.count_active_sessions(user_id) >= self.max_concurrent_sessions:
            raise LimitExceededError("Maximum number of concurrent recovery sessions reached")

        self.validate_recovery_options(recovery_type, options)

        session = self.store.create_session(user_id, device_id, recovery_type, options)
        self.cache.set(recovery_key(session.id), session.to_dict(), RECOVERY_TTL)
        self._launch(session)

        logger.info(
            "Data recovery started: %s (user=%s device=%s type=%s)",
            session.id, user_id, device_id, recovery_type,
        )
        return session

    async def cancel_recovery(self, recovery_id: str, user_id: str) -> RecoverySession:
        session = await self.get_recovery_session(recovery_id, user_id)
        if not session.is_active:
            raise InvalidStateError("Cannot cancel recovery session in current status")

        cancelled = self.store.cancel_session(recovery_id)
        self.cache.delete(recovery_key(recovery_id))
        if cancelled is None:
            raise InvalidStateError("Cannot cancel recovery session in current status")
        self.sessions.cancel(recovery_id)

        logger.info("Recovery session cancelled: %s (user=%s)", recovery_id, user_id)
        return cancelled

    async def pause_recovery(self, recovery_id: str, user_id: str) -> RecoverySession:
        session = await self.get_recovery_session(recovery_id, user_id)
        if session.status != RecoveryStatus.IN_PROGRESS.value:
            raise InvalidStateError("Cannot pause recovery session in current status")

        paused = self.store.pause_session(recovery_id)
        self.cache.delete(recovery_key(recovery_id))
        if paused is None:
            raise InvalidStateError("Cannot pause recovery session in current status")
        self.sessions.pause(recovery_id)

        logger.info("Recovery session paused: %s (user=%s)", recovery_id, user_id)
        return paused

    async def resume_recovery(self, recovery_id: str, user_id: str) -> RecoverySession:
        """Resume a cancelled (or paused) session.

        The run restarts from the scanning phase; progress made before the
        pause is not carried over.
        """
        session = await self.get_recovery_session(recovery_id, user_id)
        if session.status != RecoveryStatus.CANCELLED.value:
            raise InvalidStateError("Can only resume cancelled recovery sessions")

        resumed = self.store.resume_session(recovery_id)
        self.cache.delete(recovery_key(recovery_id))
        if resumed is None:
            raise InvalidStateError("Can only resume cancelled recovery sessions")
        self._launch(resumed)

        logger.info("Recovery session resumed: %s (user=%s)", recovery_id, user_id)
        return resumed

    def _launch(self, session: RecoverySession) -> None:
        self.sessions.launch(session.id, session.user_id, self.simulator.run)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_recovery_session(self, recovery_id: str, user_id: Optional[str] = None) -> RecoverySession:
        session = read_through(
            self.cache,
            recovery_key(recovery_id),
            RECOVERY_TTL,
            lambda: self.store.find_session(recovery_id),
            RecoverySession.from_dict,
        )
        if session is None or (user_id is not None and session.user_id != user_id):
            raise NotFoundError("Recovery session not found")
        return session

    async def get_user_recovery_sessions(
        self,
        user_id: str,
        *,
        status: Optional[str] = None,
        recovery_type: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[RecoverySession]:
        return self.store.list_user_sessions(
            user_id, status=status, recovery_type=recovery_type, limit=limit, offset=offset)

    async def get_recovery_progress(self, recovery_id: str, user_id: str) -> Dict[str, Any]:
        session = await self.get_recovery_session(recovery_id, user_id)
        scan = self.sessions.get(recovery_id)
        return {
            "id": session.id,
            "status": session.status,
            "progress": session.progress,
            "current_phase": scan.current_phase if scan else None,
            "total_files": session.total_files,
            "recovered_files": session.recovered_files,
            "failed_files": session.failed_files,
            "success_rate": session.success_rate,
            "success_percentage": session.success_percentage,
            "estimated_time_remaining": session.estimated_time_remaining(),
            "scan_results": session.scan_results,
        }

    async def get_active_recoveries(self, user_id: Optional[str] = None) -> List[RecoverySession]:
        return self.store.get_active_sessions(user_id)

    async def get_recovery_stats(self, user_id: Optional[str] = None, days: int = 30) -> List[Dict[str, Any]]:
        return self.store.recovery_stats(utcnow() - timedelta(days=days), user_id)

    async def cleanup_old_sessions(self, days_old: int = 90) -> int:
        deleted = self.store.cleanup_old_sessions(utcnow() - timedelta(days=days_old))
        if deleted:
            self.cache.delete(*[recovery_key(session_id) for session_id in deleted])
        # Paused runs are stored as cancelled and keep their registry entry.
        for session_id in deleted:
            self.sessions.cancel(session_id)
        logger.info("Cleaned up %d old recovery sessions", len(deleted))
        return len(deleted)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate_recovery_options(self, recovery_type: str, options: Dict[str, Any]) -> bool:
        if recovery_type not in RECOVERY_OPTIONS:
            raise ValidationError("Invalid recovery type", field="recoveryType")

        allowed = RECOVERY_OPTIONS[recovery_type]
        invalid = [name for name in options if name not in allowed]
        if invalid:
            raise ValidationError(
                f"Invalid options for recovery type {recovery_type}: {', '.join(invalid)}",
                field="options",
            )
        return True

    async def shutdown(self) -> None:
        await self.sessions.shutdown()
