from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from syncsphere.models.base import format_dt, load_json, parse_dt, utcnow


class RecoveryStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RecoveryType(str, Enum):
    DELETED_FILES = "deleted_files"
    FORMATTED_DRIVE = "formatted_drive"
    CORRUPTED_FILES = "corrupted_files"
    SYSTEM_CRASH = "system_crash"
    VIRUS_ATTACK = "virus_attack"
    HARDWARE_FAILURE = "hardware_failure"


ACTIVE_STATUSES = (RecoveryStatus.PENDING.value, RecoveryStatus.IN_PROGRESS.value)
FINISHED_STATUSES = (
    RecoveryStatus.COMPLETED.value,
    RecoveryStatus.FAILED.value,
    RecoveryStatus.CANCELLED.value,
)

SESSION_TYPES = {
    RecoveryType.DELETED_FILES.value: "scan",
    RecoveryType.FORMATTED_DRIVE.value: "restore",
    RecoveryType.CORRUPTED_FILES.value: "scan",
    RecoveryType.SYSTEM_CRASH.value: "restore",
    RecoveryType.VIRUS_ATTACK.value: "scan",
    RecoveryType.HARDWARE_FAILURE.value: "restore",
}

# Option keys each recovery type accepts.
RECOVERY_OPTIONS = {
    RecoveryType.DELETED_FILES.value: ("file_types", "date_range", "deep_scan"),
    RecoveryType.FORMATTED_DRIVE.value: ("partition_type", "file_system", "deep_scan"),
    RecoveryType.CORRUPTED_FILES.value: ("file_types", "repair_mode"),
    RecoveryType.SYSTEM_CRASH.value: ("boot_sector_recovery", "registry_recovery"),
    RecoveryType.VIRUS_ATTACK.value: ("quarantine_scan", "system_restore"),
    RecoveryType.HARDWARE_FAILURE.value: ("sector_analysis", "bad_block_recovery"),
}


def success_rate(recovered_files: int, total_files: int) -> float:
    if not total_files:
        return 0.0
    return recovered_files / total_files


@dataclass(frozen=True)
class RecoverySession:
    """Snapshot of one tracked recovery attempt."""
    id: str
    user_id: str
    device_id: str
    recovery_type: str
    session_type: str = "scan"
    status: str = RecoveryStatus.PENDING.value
    progress: int = 0
    total_files: int = 0
    recovered_files: int = 0
    failed_files: int = 0
    scan_results: Dict[str, Any] = field(default_factory=dict)
    recovery_options: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    estimated_completion: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def success_rate(self) -> float:
        return success_rate(self.recovered_files, self.total_files)

    @property
    def success_percentage(self) -> int:
        return round(self.success_rate * 100)

    def estimated_time_remaining(self, now: Optional[datetime] = None) -> Optional[float]:
        """Seconds until ``estimated_completion``; ``None`` when unknown."""
        if self.estimated_completion is None:
            return None
        remaining = (self.estimated_completion - (now or utcnow())).total_seconds()
        return max(remaining, 0.0)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecoverySession":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            device_id=data["device_id"],
            recovery_type=data["recovery_type"],
            session_type=data.get("session_type") or "scan",
            status=data.get("status") or RecoveryStatus.PENDING.value,
            progress=int(data.get("progress") or 0),
            total_files=int(data.get("total_files") or 0),
            recovered_files=int(data.get("recovered_files") or 0),
            failed_files=int(data.get("failed_files") or 0),
            scan_results=load_json(data.get("scan_results")),
            recovery_options=load_json(data.get("recovery_options")),
            error_message=data.get("error_message"),
            estimated_completion=parse_dt(data.get("estimated_completion")),
            completed_at=parse_dt(data.get("completed_at")),
            created_at=parse_dt(data.get("created_at")),
            updated_at=parse_dt(data.get("updated_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "device_id": self.device_id,
            "recovery_type": self.recovery_type,
            "session_type": self.session_type,
            "status": self.status,
            "progress": self.progress,
            "total_files": self.total_files,
            "recovered_files": self.recovered_files,
            "failed_files": self.failed_files,
            "scan_results": dict(self.scan_results),
            "recovery_options": dict(self.recovery_options),
            "error_message": self.error_message,
            "estimated_completion": format_dt(self.estimated_completion),
            "completed_at": format_dt(self.completed_at),
            "created_at": format_dt(self.created_at),
            "updated_at": format_dt(self.updated_at),
        }
