from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional

from syncsphere.database.redis_manager import CacheManager
from syncsphere.database.store import Store
from syncsphere.exceptions import LimitExceededError, NotFoundError, ValidationError
from syncsphere.models import Device, DeviceStatus, SubscriptionTier
from syncsphere.services.cache import (
    CONNECTION_TTL,
    DEVICE_TTL,
    connection_key,
    device_key,
    read_through,
)

logger = logging.getLogger(__name__)

# None means unlimited.
DEVICE_LIMITS: Dict[str, Optional[int]] = {
    SubscriptionTier.FREE.value: 3,
    SubscriptionTier.BASIC.value: 10,
    SubscriptionTier.PREMIUM.value: 50,
    SubscriptionTier.ENTERPRISE.value: None,
}

DEVICE_TYPES = ("ios", "android")
UPDATABLE_FIELDS = ("device_name", "capabilities", "metadata")


def device_limit(subscription_tier: str) -> Optional[int]:
    return DEVICE_LIMITS.get(subscription_tier, DEVICE_LIMITS[SubscriptionTier.FREE.value])


class DeviceService:
    def __init__(self, store: Store, cache: CacheManager) -> None:
        self.store = store
        self.cache = cache

    def connect_device(
        self,
        user_id: str,
        *,
        device_type: str,
        device_model: str,
        os_version: str,
        serial_number: Optional[str] = None,
        device_name: Optional[str] = None,
        capabilities: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Device:
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        if device_type not in DEVICE_TYPES:
            raise ValidationError(f"Unsupported device type: {device_type}", field="deviceType")

        existing = self.store.find_device_by_serial(user_id, serial_number) if serial_number else None

        limit = device_limit(user.subscription_tier)
        # Reconnecting a known serial does not add a device.
        if existing is None and limit is not None and self.store.count_user_devices(user_id) >= limit:
            raise LimitExceededError(
                f"Device limit reached. Your {user.subscription_tier} plan allows up to {limit} devices.")

        connection_id = secrets.token_hex(16)
        device = self.store.connect_device(
            user_id=user_id,
            device_type=device_type,
            device_model=device_model,
            os_version=os_version,
            serial_number=serial_number,
            device_name=device_name or f"{device_model} ({device_type})",
            connection_id=connection_id,
            capabilities=capabilities,
            metadata=metadata,
        )

        if existing is not None:
            self._invalidate(existing)
        self.cache.set(device_key(device.id), device.to_dict(), DEVICE_TTL)
        self.cache.set(connection_key(connection_id), device.id, CONNECTION_TTL)

        self._log_activity(user_id, device.id, "device_connected", {
            "device_type": device_type,
            "device_model": device_model,
            "connection_id": connection_id,
        })
        logger.info("Device connected: %s (user=%s)", device.id, user_id)
        return device

    def disconnect_device(self, user_id: str, device_id: str) -> Device:
        device = self._owned_device(user_id, device_id)
        disconnected = self.store.disconnect_device(device_id)
        self._invalidate(device)

        self._log_activity(user_id, device_id, "device_disconnected", {
            "device_type": device.device_type,
            "device_model": device.device_model,
        })
        return disconnected or device

    def get_device(self, user_id: str, device_id: str) -> Device:
        return self._owned_device(user_id, device_id)

    def get_device_by_id(self, device_id: str) -> Device:
        device = read_through(
            self.cache,
            device_key(device_id),
            DEVICE_TTL,
            lambda: self.store.find_device_by_id(device_id),
            Device.from_dict,
        )
        if device is None:
            raise NotFoundError("Device not found")
        return device

    def get_device_by_connection_id(self, connection_id: str) -> Device:
        device_id = self.cache.get(connection_key(connection_id))
        if device_id:
            return self.get_device_by_id(device_id)

        device = self.store.find_device_by_connection_id(connection_id)
        if device is None:
            raise NotFoundError("Device not found")

        self.cache.set(connection_key(connection_id), device.id, CONNECTION_TTL)
        self.cache.set(device_key(device.id), device.to_dict(), DEVICE_TTL)
        return device

    def update_device(self, user_id: str, device_id: str, updates: Dict[str, Any]) -> Device:
        device = self._owned_device(user_id, device_id)

        filtered = {key: value for key, value in updates.items() if key in UPDATABLE_FIELDS and value is not None}
        if not filtered:
            raise ValidationError("No valid fields to update")

        updated = self.store.update_device(device_id, filtered)
        self._invalidate(device)
        if updated is None:
            raise NotFoundError("Device not found")
        return updated

    def update_device_status(self, user_id: str, device_id: str, status: str) -> Device:
        valid = {member.value for member in DeviceStatus}
        if status not in valid:
            raise ValidationError("Invalid device status", field="status")

        device = self._owned_device(user_id, device_id)
        updated = self.store.update_device(device_id, {"status": status})
        self._invalidate(device)
        if updated is None:
            raise NotFoundError("Device not found")
        return updated

    def delete_device(self, user_id: str, device_id: str) -> bool:
        device = self._owned_device(user_id, device_id)
        deleted = self.store.soft_delete_device(device_id)
        self._invalidate(device)

        self._log_activity(user_id, device_id, "device_deleted", {
            "device_type": device.device_type,
            "device_model": device.device_model,
        })
        return deleted

    def list_user_devices(
        self,
        user_id: str,
        *,
        status: Optional[str] = None,
        device_type: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        page = max(1, page)
        limit = max(1, min(limit, 100))
        total = self.store.count_user_devices(user_id, status=status, device_type=device_type)
        devices = self.store.list_user_devices(
            user_id, status=status, device_type=device_type,
            limit=limit, offset=(page - 1) * limit,
        )
        return {
            "devices": devices,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }

    @staticmethod
    def check_compatibility(
        device_type: str,
        os_version: Optional[str] = None,
        capabilities: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        capabilities = capabilities or {}
        compatibility: Dict[str, Any] = {
            "supported": True,
            "features": {
                "data_transfer": True,
                "backup": True,
                "sync": True,
                "remote_access": False,
            },
            "limitations": [],
            "recommendations": [],
        }

        version = _major_minor(os_version)
        if device_type == "ios" and version is not None and version < 12.0:
            compatibility["limitations"].append("iOS version below 12.0 has limited sync capabilities")
            compatibility["features"]["sync"] = False
        elif device_type == "android" and version is not None and version < 8.0:
            compatibility["limitations"].append("Android version below 8.0 has limited backup capabilities")
            compatibility["features"]["backup"] = False

        storage = capabilities.get("storage")
        if isinstance(storage, (int, float)) and storage < 1_000_000_000:
            compatibility["limitations"].append("Low storage space may affect backup operations")
            compatibility["recommendations"].append("Free up storage space for optimal performance")

        if not capabilities.get("wifi") and not capabilities.get("cellular"):
            compatibility["supported"] = False
            compatibility["limitations"].append("Device requires internet connectivity")

        return compatibility

    def list_device_activity(self, user_id: str, device_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        self._owned_device(user_id, device_id)
        return self.store.list_device_activity(device_id, limit=limit)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _owned_device(self, user_id: str, device_id: str) -> Device:
        device = self.get_device_by_id(device_id)
        if device.user_id != user_id:
            raise NotFoundError("Device not found")
        return device

    def _invalidate(self, device: Device) -> None:
        keys = [device_key(device.id)]
        if device.connection_id:
            keys.append(connection_key(device.connection_id))
        self.cache.delete(*keys)

    def _log_activity(self, user_id: str, device_id: str, action: str, metadata: Dict[str, Any]) -> None:
        try:
            self.store.log_device_activity(user_id, device_id, action, metadata)
        except Exception:
            logger.exception("Failed to log device activity %s for %s", action, device_id)


def _major_minor(os_version: Optional[str]) -> Optional[float]:
    """Parse ``"iOS 11.4"`` / ``"14.2.1"`` into ``11.4`` / ``14.2``."""
    if not os_version:
        return None
    token = os_version.strip().split()[-1]
    parts = token.split(".")
    try:
        return float(".".join(parts[:2]))
    except ValueError:
        return None
