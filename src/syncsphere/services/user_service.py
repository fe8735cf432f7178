from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from syncsphere.database.redis_manager import CacheManager
from syncsphere.database.store import Store
from syncsphere.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from syncsphere.models import RecoveryStatus, SubscriptionTier, User, UserRole
from syncsphere.services.cache import USER_TTL, read_through, user_key

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "email")
THEMES = ("light", "dark", "auto")
NOTIFICATION_EVENTS = ("device_connected", "device_disconnected", "recovery_completed", "security_alerts")


class UserService:
    def __init__(self, store: Store, cache: CacheManager) -> None:
        self.store = store
        self.cache = cache

    def create_user(
        self,
        email: str,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        password_hash: Optional[str] = None,
        role: str = UserRole.USER.value,
        subscription_tier: str = SubscriptionTier.FREE.value,
    ) -> User:
        email = email.strip().lower()
        if self.store.find_user_by_email(email):
            raise ConflictError("Email already in use")
        if role not in {member.value for member in UserRole}:
            raise ValidationError("Invalid role", field="role")
        if subscription_tier not in {member.value for member in SubscriptionTier}:
            raise ValidationError("Invalid subscription tier", field="subscriptionTier")

        user = self.store.create_user(
            email,
            first_name=first_name,
            last_name=last_name,
            password_hash=password_hash,
            role=role,
            subscription_tier=subscription_tier,
        )
        logger.info("User created: %s", user.id)
        return user

    def get_user_profile(self, user_id: str) -> User:
        user = read_through(
            self.cache,
            user_key(user_id),
            USER_TTL,
            lambda: self.store.find_user_by_id(user_id),
            User.from_dict,
            encode=User.public_dict,
        )
        if user is None:
            raise NotFoundError("User not found")
        return user

    def require_active_user(self, user_id: str) -> User:
        user = self.get_user_profile(user_id)
        if not user.is_active:
            raise InvalidStateError("User account is deactivated")
        return user

    def update_user_profile(self, user_id: str, updates: Dict[str, Any]) -> User:
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        filtered = {key: value for key, value in updates.items() if key in PROFILE_FIELDS and value is not None}
        if not filtered:
            raise ValidationError("No valid fields to update")

        if "email" in filtered:
            filtered["email"] = filtered["email"].strip().lower()
            if filtered["email"] != user.email and self.store.find_user_by_email(filtered["email"]):
                raise ConflictError("Email already in use")

        updated = self.store.update_user(user_id, filtered)
        self.cache.delete(user_key(user_id))
        return updated  # type: ignore[return-value]

    def update_preferences(self, user_id: str, preferences: Dict[str, Any]) -> Dict[str, Any]:
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        validated = validate_preferences(preferences)
        merged = {**user.preferences}
        for section, values in validated.items():
            merged[section] = {**merged.get(section, {}), **values}

        self.store.update_user(user_id, {"preferences": merged})
        self.cache.delete(user_key(user_id))
        return merged

    def get_user_stats(self, user_id: str) -> Dict[str, Any]:
        user = self.get_user_profile(user_id)
        return {
            "total_devices": self.store.count_user_devices(user_id),
            "connected_devices": self.store.count_user_devices(user_id, status="connected"),
            "total_recoveries": self.store.count_user_sessions(user_id),
            "completed_recoveries": self.store.count_user_sessions(
                user_id, status=RecoveryStatus.COMPLETED.value),
            "active_recoveries": self.store.count_active_sessions(user_id),
            "unread_notifications": self.store.count_unread_notifications(user_id),
            "subscription_tier": user.subscription_tier,
            "last_login": user.last_login.isoformat() if user.last_login else None,
        }

    def deactivate_user(self, user_id: str) -> User:
        user = self.store.update_user(user_id, {"is_active": False})
        self.cache.delete(user_key(user_id))
        if user is None:
            raise NotFoundError("User not found")
        logger.info("User deactivated: %s", user_id)
        return user


def validate_preferences(preferences: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Keep the known preference sections and reject malformed values."""
    validated: Dict[str, Dict[str, Any]] = {}

    notifications = preferences.get("notifications")
    if notifications is not None:
        if not isinstance(notifications, dict):
            raise ValidationError("notifications must be an object", field="notifications")
        section = {}
        for channel in ("email", "push", "sms"):
            if channel in notifications:
                events = notifications[channel]
                if not isinstance(events, list) or any(event not in NOTIFICATION_EVENTS for event in events):
                    raise ValidationError(f"Invalid {channel} notification events", field="notifications")
                section[channel] = events
        validated["notifications"] = section

    privacy = preferences.get("privacy")
    if privacy is not None:
        if not isinstance(privacy, dict):
            raise ValidationError("privacy must be an object", field="privacy")
        section = {}
        for flag in ("share_usage_data", "allow_analytics"):
            if flag in privacy:
                if not isinstance(privacy[flag], bool):
                    raise ValidationError(f"{flag} must be a boolean", field="privacy")
                section[flag] = privacy[flag]
        validated["privacy"] = section

    interface = preferences.get("interface")
    if interface is not None:
        if not isinstance(interface, dict):
            raise ValidationError("interface must be an object", field="interface")
        section = {}
        if "theme" in interface:
            if interface["theme"] not in THEMES:
                raise ValidationError("Invalid theme", field="interface")
            section["theme"] = interface["theme"]
        for key in ("language", "timezone"):
            if key in interface:
                if not isinstance(interface[key], str):
                    raise ValidationError(f"{key} must be a string", field="interface")
                section[key] = interface[key]
        validated["interface"] = section

    return validated
