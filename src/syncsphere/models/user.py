from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from syncsphere.models.base import format_dt, load_json, parse_dt


class SubscriptionTier(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class User:
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    password_hash: Optional[str] = None
    role: str = UserRole.USER.value
    subscription_tier: str = SubscriptionTier.FREE.value
    is_active: bool = True
    preferences: Dict[str, Any] = field(default_factory=dict)
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            email=data["email"],
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            password_hash=data.get("password_hash"),
            role=data.get("role") or UserRole.USER.value,
            subscription_tier=data.get("subscription_tier") or SubscriptionTier.FREE.value,
            is_active=bool(data.get("is_active", True)),
            preferences=load_json(data.get("preferences")),
            last_login=parse_dt(data.get("last_login")),
            created_at=parse_dt(data.get("created_at")),
            updated_at=parse_dt(data.get("updated_at")),
        )

    def to_dict(self, *, include_credentials: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "subscription_tier": self.subscription_tier,
            "is_active": self.is_active,
            "preferences": dict(self.preferences),
            "last_login": format_dt(self.last_login),
            "created_at": format_dt(self.created_at),
            "updated_at": format_dt(self.updated_at),
        }
        if include_credentials:
            data["password_hash"] = self.password_hash
        return data

    def public_dict(self) -> Dict[str, Any]:
        return self.to_dict(include_credentials=False)
