"""Database schema definition.

Column types are kept to the subset SQLite and MySQL both accept. Timestamps
are stored as ISO-8601 UTC strings and JSON documents as TEXT.
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from syncsphere.database.connection import Database

logger = logging.getLogger(__name__)

TABLES = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id VARCHAR(64) PRIMARY KEY,
        email VARCHAR(255) NOT NULL UNIQUE,
        password_hash VARCHAR(255),
        first_name VARCHAR(100),
        last_name VARCHAR(100),
        role VARCHAR(20) NOT NULL,
        subscription_tier VARCHAR(20) NOT NULL,
        is_active INTEGER NOT NULL,
        preferences TEXT,
        last_login VARCHAR(40),
        created_at VARCHAR(40) NOT NULL,
        updated_at VARCHAR(40) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS devices (
        id VARCHAR(64) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        device_type VARCHAR(20) NOT NULL,
        device_model VARCHAR(100) NOT NULL,
        os_version VARCHAR(40) NOT NULL,
        serial_number VARCHAR(100),
        device_name VARCHAR(100),
        connection_id VARCHAR(64) UNIQUE,
        status VARCHAR(20) NOT NULL,
        last_connected VARCHAR(40),
        capabilities TEXT,
        metadata TEXT,
        created_at VARCHAR(40) NOT NULL,
        updated_at VARCHAR(40) NOT NULL,
        deleted_at VARCHAR(40)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS recovery_sessions (
        id VARCHAR(64) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        device_id VARCHAR(64) NOT NULL REFERENCES devices(id),
        recovery_type VARCHAR(40) NOT NULL,
        session_type VARCHAR(20) NOT NULL,
        status VARCHAR(20) NOT NULL,
        progress INTEGER NOT NULL,
        total_files INTEGER NOT NULL,
        recovered_files INTEGER NOT NULL,
        failed_files INTEGER NOT NULL,
        scan_results TEXT,
        recovery_options TEXT,
        error_message TEXT,
        estimated_completion VARCHAR(40),
        completed_at VARCHAR(40),
        created_at VARCHAR(40) NOT NULL,
        updated_at VARCHAR(40) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS device_activity_logs (
        id VARCHAR(64) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL,
        device_id VARCHAR(64) NOT NULL,
        action VARCHAR(50) NOT NULL,
        metadata TEXT,
        created_at VARCHAR(40) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id VARCHAR(64) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        type VARCHAR(50) NOT NULL,
        title VARCHAR(255) NOT NULL,
        message TEXT NOT NULL,
        data TEXT,
        is_read INTEGER NOT NULL,
        created_at VARCHAR(40) NOT NULL
    )
    """,
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_devices_user_id ON devices(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_devices_status ON devices(status)",
    "CREATE INDEX IF NOT EXISTS idx_recovery_user_id ON recovery_sessions(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_recovery_status ON recovery_sessions(status)",
    "CREATE INDEX IF NOT EXISTS idx_activity_device_id ON device_activity_logs(device_id)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_user_id ON notifications(user_id)",
]

# MySQL reports an existing index name with this error number.
MYSQL_DUPLICATE_KEY_NAME = 1061


def create_schema(db: "Database") -> None:
    db.execute_script(TABLES)
    if db.dialect == "sqlite":
        db.execute_script(INDEXES)
        return

    from mysql.connector import Error as MySQLError

    for statement in INDEXES:
        try:
            db.execute_script([statement.replace(" IF NOT EXISTS", "")])
        except MySQLError as exc:
            if getattr(exc, "errno", None) != MYSQL_DUPLICATE_KEY_NAME:
                raise
            logger.debug("Index already present: %s", statement)
