"""Service layer for SyncSphere."""

from syncsphere.services.device_service import DeviceService
from syncsphere.services.events import EventBus
from syncsphere.services.notification_service import NotificationService
from syncsphere.services.recovery_service import DataRecoveryService
from syncsphere.services.recovery_simulator import RecoveryPhaseSimulator
from syncsphere.services.session_manager import RecoverySessionManager
from syncsphere.services.user_service import UserService

__all__ = [
    "DataRecoveryService",
    "DeviceService",
    "EventBus",
    "NotificationService",
    "RecoveryPhaseSimulator",
    "RecoverySessionManager",
    "UserService",
]
