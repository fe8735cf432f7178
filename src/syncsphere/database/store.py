"""
Raw SQL data access for SyncSphere.

One ``Store`` owns every query against the relational database: users,
devices, device activity, recovery sessions and notifications. Status
transitions on recovery sessions are single-row conditional updates so a
stale caller can never overwrite a session another operation already moved.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from syncsphere.database.connection import Database
from syncsphere.models import (
    Device,
    DeviceStatus,
    Notification,
    RecoverySession,
    RecoveryStatus,
    User,
)
from syncsphere.models.base import dump_json, format_dt, new_id, utcnow
from syncsphere.models.recovery_session import ACTIVE_STATUSES, FINISHED_STATUSES, SESSION_TYPES

logger = logging.getLogger(__name__)


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class Store:
    """
    Manages all relational reads and writes for SyncSphere.

    Tables:
    - users -> account, role, subscription tier, preferences
    - devices -> connected phones/drives (soft deleted via ``deleted_at``)
    - device_activity_logs -> append-only audit trail
    - recovery_sessions -> one row per recovery attempt
    - notifications -> per-user inbox
    """

    USER_UPDATABLE = (
        "email", "first_name", "last_name", "password_hash", "role",
        "subscription_tier", "is_active", "preferences", "last_login",
    )
    DEVICE_UPDATABLE = (
        "device_name", "device_model", "os_version", "capabilities",
        "metadata", "status", "connection_id", "last_connected",
    )
    JSON_COLUMNS = ("preferences", "capabilities", "metadata", "scan_results", "recovery_options", "data")

    def __init__(self, db: Database):
        self.db = db

    def _encode(self, column: str, value: Any) -> Any:
        if column in self.JSON_COLUMNS:
            return dump_json(value)
        if isinstance(value, datetime):
            return format_dt(value)
        if isinstance(value, bool):
            return int(value)
        return value

    def _update_row(self, table: str, row_id: str, fields: Dict[str, Any],
                    allowed: Iterable[str], extra_where: str = "") -> int:
        allowed = set(allowed)
        columns = [column for column in fields if column in allowed]
        if not columns:
            return 0

        assignments = ", ".join(f"{column} = ?" for column in columns)
        params = [self._encode(column, fields[column]) for column in columns]
        params.extend([format_dt(utcnow()), row_id])
        sql = f"UPDATE {table} SET {assignments}, updated_at = ? WHERE id = ?{extra_where}"
        return self.db.execute(sql, params)

    # ==================== USER OPERATIONS ====================

    def create_user(self, email: str, *, first_name: Optional[str] = None,
                    last_name: Optional[str] = None, password_hash: Optional[str] = None,
                    role: str = "user", subscription_tier: str = "free",
                    preferences: Optional[Dict[str, Any]] = None) -> User:
        user_id = new_id("u")
        now = format_dt(utcnow())
        self.db.execute(
            """
            INSERT INTO users
            (id, email, password_hash, first_name, last_name, role,
             subscription_tier, is_active, preferences, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?)
            """,
            (user_id, email, password_hash, first_name, last_name, role,
             subscription_tier, dump_json(preferences or {}), now, now),
        )
        return self.find_user_by_id(user_id)  # type: ignore[return-value]

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        row = self.db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
        return User.from_dict(row) if row else None

    def find_user_by_email(self, email: str) -> Optional[User]:
        row = self.db.fetch_one("SELECT * FROM users WHERE email = ?", (email,))
        return User.from_dict(row) if row else None

    def update_user(self, user_id: str, fields: Dict[str, Any]) -> Optional[User]:
        self._update_row("users", user_id, fields, self.USER_UPDATABLE)
        return self.find_user_by_id(user_id)

    # ==================== DEVICE OPERATIONS ====================

    def connect_device(self, *, user_id: str, device_type: str, device_model: str,
                       os_version: str, connection_id: str,
                       serial_number: Optional[str] = None,
                       device_name: Optional[str] = None,
                       capabilities: Optional[Dict[str, Any]] = None,
                       metadata: Optional[Dict[str, Any]] = None) -> Device:
        """Insert a connected device, or reconnect the user's device with the same serial."""
        now = utcnow()
        existing = None
        if serial_number:
            existing = self.db.fetch_one(
                "SELECT id FROM devices WHERE user_id = ? AND serial_number = ? AND deleted_at IS NULL",
                (user_id, serial_number),
            )

        if existing:
            self._update_row("devices", existing["id"], {
                "device_model": device_model,
                "os_version": os_version,
                "device_name": device_name,
                "connection_id": connection_id,
                "status": DeviceStatus.CONNECTED.value,
                "last_connected": now,
                "capabilities": capabilities or {},
                "metadata": metadata or {},
            }, self.DEVICE_UPDATABLE)
            return self.find_device_by_id(existing["id"])  # type: ignore[return-value]

        device_id = new_id("d")
        stamp = format_dt(now)
        self.db.execute(
            """
            INSERT INTO devices
            (id, user_id, device_type, device_model, os_version, serial_number,
             device_name, connection_id, status, last_connected, capabilities,
             metadata, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (device_id, user_id, device_type, device_model, os_version, serial_number,
             device_name, connection_id, DeviceStatus.CONNECTED.value, stamp,
             dump_json(capabilities or {}), dump_json(metadata or {}), stamp, stamp),
        )
        return self.find_device_by_id(device_id)  # type: ignore[return-value]

    def find_device_by_id(self, device_id: str) -> Optional[Device]:
        row = self.db.fetch_one(
            "SELECT * FROM devices WHERE id = ? AND deleted_at IS NULL", (device_id,))
        return Device.from_dict(row) if row else None

    def find_device_by_connection_id(self, connection_id: str) -> Optional[Device]:
        row = self.db.fetch_one(
            "SELECT * FROM devices WHERE connection_id = ? AND deleted_at IS NULL", (connection_id,))
        return Device.from_dict(row) if row else None

    def find_device_by_serial(self, user_id: str, serial_number: str) -> Optional[Device]:
        row = self.db.fetch_one(
            "SELECT * FROM devices WHERE user_id = ? AND serial_number = ? AND deleted_at IS NULL",
            (user_id, serial_number),
        )
        return Device.from_dict(row) if row else None

    def _device_filters(self, user_id: str, status: Optional[str], device_type: Optional[str]):
        where = ["user_id = ?", "deleted_at IS NULL"]
        params: List[Any] = [user_id]
        if status:
            where.append("status = ?")
            params.append(status)
        if device_type:
            where.append("device_type = ?")
            params.append(device_type)
        return " AND ".join(where), params

    def list_user_devices(self, user_id: str, *, status: Optional[str] = None,
                          device_type: Optional[str] = None, limit: int = 50,
                          offset: int = 0) -> List[Device]:
        where, params = self._device_filters(user_id, status, device_type)
        rows = self.db.fetch_all(
            f"SELECT * FROM devices WHERE {where} ORDER BY created_at DESC LIMIT ? OFFSET ?",
            (*params, limit, offset),
        )
        return [Device.from_dict(row) for row in rows]

    def count_user_devices(self, user_id: str, *, status: Optional[str] = None,
                           device_type: Optional[str] = None) -> int:
        where, params = self._device_filters(user_id, status, device_type)
        row = self.db.fetch_one(f"SELECT COUNT(*) AS total FROM devices WHERE {where}", params)
        return int(row["total"]) if row else 0

    def update_device(self, device_id: str, fields: Dict[str, Any]) -> Optional[Device]:
        self._update_row("devices", device_id, fields, self.DEVICE_UPDATABLE,
                         extra_where=" AND deleted_at IS NULL")
        return self.find_device_by_id(device_id)

    def disconnect_device(self, device_id: str) -> Optional[Device]:
        return self.update_device(device_id, {
            "status": DeviceStatus.DISCONNECTED.value,
            "connection_id": None,
        })

    def soft_delete_device(self, device_id: str) -> bool:
        now = format_dt(utcnow())
        changed = self.db.execute(
            """
            UPDATE devices SET deleted_at = ?, updated_at = ?, connection_id = NULL, status = ?
            WHERE id = ? AND deleted_at IS NULL
            """,
            (now, now, DeviceStatus.DISCONNECTED.value, device_id),
        )
        return changed > 0

    def log_device_activity(self, user_id: str, device_id: str, action: str,
                            metadata: Optional[Dict[str, Any]] = None) -> None:
        self.db.execute(
            """
            INSERT INTO device_activity_logs (id, user_id, device_id, action, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (new_id("a"), user_id, device_id, action, dump_json(metadata or {}), format_dt(utcnow())),
        )

    def list_device_activity(self, device_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return self.db.fetch_all(
            "SELECT * FROM device_activity_logs WHERE device_id = ? ORDER BY created_at DESC LIMIT ?",
            (device_id, limit),
        )

    # ==================== RECOVERY SESSION OPERATIONS ====================

    def create_session(self, user_id: str, device_id: str, recovery_type: str,
                       options: Optional[Dict[str, Any]] = None) -> RecoverySession:
        session_id = new_id("r")
        now = format_dt(utcnow())
        self.db.execute(
            """
            INSERT INTO recovery_sessions
            (id, user_id, device_id, recovery_type, session_type, status, progress,
             total_files, recovered_files, failed_files, scan_results,
             recovery_options, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, 0, 0, 0, 0, ?, ?, ?, ?)
            """,
            (session_id, user_id, device_id, recovery_type,
             SESSION_TYPES.get(recovery_type, "scan"), RecoveryStatus.PENDING.value,
             dump_json({}), dump_json(options or {}), now, now),
        )
        return self.find_session(session_id)  # type: ignore[return-value]

    def find_session(self, session_id: str) -> Optional[RecoverySession]:
        row = self.db.fetch_one("SELECT * FROM recovery_sessions WHERE id = ?", (session_id,))
        return RecoverySession.from_dict(row) if row else None

    def list_user_sessions(self, user_id: str, *, status: Optional[str] = None,
                           recovery_type: Optional[str] = None, limit: int = 20,
                           offset: int = 0) -> List[RecoverySession]:
        where = ["user_id = ?"]
        params: List[Any] = [user_id]
        if status:
            where.append("status = ?")
            params.append(status)
        if recovery_type:
            where.append("recovery_type = ?")
            params.append(recovery_type)
        rows = self.db.fetch_all(
            f"""
            SELECT * FROM recovery_sessions WHERE {' AND '.join(where)}
            ORDER BY created_at DESC LIMIT ? OFFSET ?
            """,
            (*params, limit, offset),
        )
        return [RecoverySession.from_dict(row) for row in rows]

    def get_active_sessions(self, user_id: Optional[str] = None) -> List[RecoverySession]:
        sql = f"SELECT * FROM recovery_sessions WHERE status IN ({_placeholders(ACTIVE_STATUSES)})"
        params: List[Any] = list(ACTIVE_STATUSES)
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        sql += " ORDER BY created_at DESC"
        return [RecoverySession.from_dict(row) for row in self.db.fetch_all(sql, params)]

    def count_active_sessions(self, user_id: str) -> int:
        row = self.db.fetch_one(
            f"""
            SELECT COUNT(*) AS total FROM recovery_sessions
            WHERE user_id = ? AND status IN ({_placeholders(ACTIVE_STATUSES)})
            """,
            (user_id, *ACTIVE_STATUSES),
        )
        return int(row["total"]) if row else 0

    def count_user_sessions(self, user_id: str, status: Optional[str] = None) -> int:
        sql = "SELECT COUNT(*) AS total FROM recovery_sessions WHERE user_id = ?"
        params: List[Any] = [user_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        row = self.db.fetch_one(sql, params)
        return int(row["total"]) if row else 0

    def transition_session(self, session_id: str, status: str, *,
                           expected: Sequence[str], fields: Optional[Dict[str, Any]] = None
                           ) -> Optional[RecoverySession]:
        """Move a session to ``status`` only if it is currently in one of ``expected``.

        Returns the refreshed session, or ``None`` when the row was not in an
        expected status (or does not exist).
        """
        fields = dict(fields or {})
        columns = list(fields)
        assignments = "".join(f", {column} = ?" for column in columns)
        params: List[Any] = [status]
        params.extend(self._encode(column, fields[column]) for column in columns)
        params.append(format_dt(utcnow()))
        params.append(session_id)
        params.extend(expected)

        changed = self.db.execute(
            f"""
            UPDATE recovery_sessions SET status = ?{assignments}, updated_at = ?
            WHERE id = ? AND status IN ({_placeholders(expected)})
            """,
            params,
        )
        if not changed:
            return None
        return self.find_session(session_id)

    def update_session_progress(self, session_id: str, progress: int, *,
                                total_files: Optional[int] = None,
                                recovered_files: Optional[int] = None,
                                failed_files: Optional[int] = None,
                                scan_results: Optional[Dict[str, Any]] = None,
                                estimated_completion: Optional[datetime] = None
                                ) -> Optional[RecoverySession]:
        """Record a progress step while the session is still ``in_progress``."""
        fields: Dict[str, Any] = {"progress": progress}
        if total_files is not None:
            fields["total_files"] = total_files
        if recovered_files is not None:
            fields["recovered_files"] = recovered_files
        if failed_files is not None:
            fields["failed_files"] = failed_files
        if scan_results is not None:
            fields["scan_results"] = scan_results
        if estimated_completion is not None:
            fields["estimated_completion"] = estimated_completion

        in_progress = RecoveryStatus.IN_PROGRESS.value
        return self.transition_session(session_id, in_progress, expected=(in_progress,), fields=fields)

    def start_session(self, session_id: str) -> Optional[RecoverySession]:
        return self.transition_session(
            session_id, RecoveryStatus.IN_PROGRESS.value, expected=ACTIVE_STATUSES)

    def complete_session(self, session_id: str) -> Optional[RecoverySession]:
        return self.transition_session(
            session_id, RecoveryStatus.COMPLETED.value,
            expected=(RecoveryStatus.IN_PROGRESS.value,),
            fields={"progress": 100, "completed_at": utcnow()},
        )

    def cancel_session(self, session_id: str) -> Optional[RecoverySession]:
        return self.transition_session(
            session_id, RecoveryStatus.CANCELLED.value, expected=ACTIVE_STATUSES,
            fields={"completed_at": utcnow()},
        )

    def pause_session(self, session_id: str) -> Optional[RecoverySession]:
        # There is no paused status; a paused session is stored as cancelled.
        return self.transition_session(
            session_id, RecoveryStatus.CANCELLED.value,
            expected=(RecoveryStatus.IN_PROGRESS.value,),
        )

    def resume_session(self, session_id: str) -> Optional[RecoverySession]:
        return self.transition_session(
            session_id, RecoveryStatus.IN_PROGRESS.value,
            expected=(RecoveryStatus.CANCELLED.value,),
            fields={"completed_at": None, "error_message": None},
        )

    def mark_session_failed(self, session_id: str, error_message: str) -> Optional[RecoverySession]:
        return self.transition_session(
            session_id, RecoveryStatus.FAILED.value, expected=ACTIVE_STATUSES,
            fields={"error_message": error_message, "completed_at": utcnow()},
        )

    def recovery_stats(self, since: datetime, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        sql = """
            SELECT
                recovery_type,
                COUNT(*) AS total_sessions,
                SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) AS completed_sessions,
                SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) AS failed_sessions,
                SUM(CASE WHEN status IN ('pending', 'in_progress') THEN 1 ELSE 0 END) AS active_sessions,
                AVG(CASE WHEN status = 'completed' THEN progress END) AS avg_completion_rate,
                SUM(recovered_files) AS total_recovered_files,
                SUM(failed_files) AS total_failed_files
            FROM recovery_sessions
            WHERE created_at >= ?
        """
        params: List[Any] = [format_dt(since)]
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        sql += " GROUP BY recovery_type ORDER BY recovery_type"

        stats = []
        for row in self.db.fetch_all(sql, params):
            stats.append({
                "recovery_type": row["recovery_type"],
                "total_sessions": int(row["total_sessions"] or 0),
                "completed_sessions": int(row["completed_sessions"] or 0),
                "failed_sessions": int(row["failed_sessions"] or 0),
                "active_sessions": int(row["active_sessions"] or 0),
                "avg_completion_rate": float(row["avg_completion_rate"]) if row["avg_completion_rate"] is not None else None,
                "total_recovered_files": int(row["total_recovered_files"] or 0),
                "total_failed_files": int(row["total_failed_files"] or 0),
            })
        return stats

    def cleanup_old_sessions(self, before: datetime) -> List[str]:
        """Delete finished sessions created before ``before`` and return their ids."""
        rows = self.db.fetch_all(
            f"""
            SELECT id FROM recovery_sessions
            WHERE status IN ({_placeholders(FINISHED_STATUSES)}) AND created_at < ?
            """,
            (*FINISHED_STATUSES, format_dt(before)),
        )
        session_ids = [row["id"] for row in rows]
        if session_ids:
            self.db.execute(
                f"DELETE FROM recovery_sessions WHERE id IN ({_placeholders(session_ids)})",
                session_ids,
            )
        return session_ids

    # ==================== NOTIFICATION OPERATIONS ====================

    def create_notification(self, user_id: str, notification_type: str, title: str, message: str,
                            data: Optional[Dict[str, Any]] = None) -> Notification:
        notification_id = new_id("n")
        self.db.execute(
            """
            INSERT INTO notifications (id, user_id, type, title, message, data, is_read, created_at)
            VALUES (?, ?, ?, ?, ?, ?, 0, ?)
            """,
            (notification_id, user_id, notification_type, title, message, dump_json(data or {}), format_dt(utcnow())),
        )
        row = self.db.fetch_one("SELECT * FROM notifications WHERE id = ?", (notification_id,))
        return Notification.from_dict(row)  # type: ignore[arg-type]

    def list_notifications(self, user_id: str, *, unread_only: bool = False,
                           limit: int = 50, offset: int = 0) -> List[Notification]:
        sql = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            sql += " AND is_read = 0"
        sql += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
        rows = self.db.fetch_all(sql, (user_id, limit, offset))
        return [Notification.from_dict(row) for row in rows]

    def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        changed = self.db.execute(
            "UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?",
            (notification_id, user_id),
        )
        return changed > 0

    def mark_all_notifications_read(self, user_id: str) -> int:
        return self.db.execute(
            "UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0",
            (user_id,),
        )

    def count_unread_notifications(self, user_id: str) -> int:
        row = self.db.fetch_one(
            "SELECT COUNT(*) AS total FROM notifications WHERE user_id = ? AND is_read = 0",
            (user_id,),
        )
        return int(row["total"]) if row else 0

    def close(self) -> None:
        self.db.close()
