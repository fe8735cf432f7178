from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from syncsphere.models.base import format_dt, load_json, parse_dt


@dataclass(frozen=True)
class Notification:
    id: str
    user_id: str
    type: str
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    is_read: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Notification":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            type=data["type"],
            title=data["title"],
            message=data["message"],
            data=load_json(data.get("data")),
            is_read=bool(data.get("is_read")),
            created_at=parse_dt(data.get("created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": dict(self.data),
            "is_read": self.is_read,
            "created_at": format_dt(self.created_at),
        }
