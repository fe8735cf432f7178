from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from syncsphere.models.base import format_dt, load_json, parse_dt


class DeviceStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ERROR = "error"


@dataclass(frozen=True)
class Device:
    """Lightweight representation of a device record."""
    id: str
    user_id: str
    device_type: str
    device_model: str
    os_version: str
    serial_number: Optional[str] = None
    device_name: Optional[str] = None
    connection_id: Optional[str] = None
    status: str = DeviceStatus.DISCONNECTED.value
    last_connected: Optional[datetime] = None
    capabilities: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_connected(self) -> bool:
        return self.status == DeviceStatus.CONNECTED.value

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Device":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            device_type=data["device_type"],
            device_model=data["device_model"],
            os_version=data["os_version"],
            serial_number=data.get("serial_number"),
            device_name=data.get("device_name"),
            connection_id=data.get("connection_id"),
            status=data.get("status") or DeviceStatus.DISCONNECTED.value,
            last_connected=parse_dt(data.get("last_connected")),
            capabilities=load_json(data.get("capabilities")),
            metadata=load_json(data.get("metadata")),
            created_at=parse_dt(data.get("created_at")),
            updated_at=parse_dt(data.get("updated_at")),
            deleted_at=parse_dt(data.get("deleted_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "device_type": self.device_type,
            "device_model": self.device_model,
            "os_version": self.os_version,
            "serial_number": self.serial_number,
            "device_name": self.device_name,
            "connection_id": self.connection_id,
            "status": self.status,
            "last_connected": format_dt(self.last_connected),
            "capabilities": dict(self.capabilities),
            "metadata": dict(self.metadata),
            "created_at": format_dt(self.created_at),
            "updated_at": format_dt(self.updated_at),
            "deleted_at": format_dt(self.deleted_at),
        }
