from syncsphere.models.devices import Device, DeviceStatus
from syncsphere.models.notification import Notification
from syncsphere.models.recovery_session import (
    RecoverySession,
    RecoveryStatus,
    RecoveryType,
)
from syncsphere.models.user import SubscriptionTier, User, UserRole

__all__ = [
    'Device',
    'DeviceStatus',
    'Notification',
    'RecoverySession',
    'RecoveryStatus',
    'RecoveryType',
    'SubscriptionTier',
    'User',
    'UserRole',
]
