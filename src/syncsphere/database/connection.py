"""Database connection management.

A thin DB-API wrapper that speaks to SQLite during development and tests and
to MySQL in production. Queries are written with ``?`` placeholders and
translated for the MySQL driver.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import unquote, urlparse

import mysql.connector
from mysql.connector import Error as MySQLError
from mysql.connector.constants import ClientFlag

from syncsphere.database.schema import create_schema

logger = logging.getLogger(__name__)

SQLITE = "sqlite"
MYSQL = "mysql"


class Database:
    """Connection wrapper with context manager support."""

    def __init__(self, url: str = "sqlite:///syncsphere.db"):
        self.url = url
        parsed = urlparse(url)
        if parsed.scheme == SQLITE:
            self.dialect = SQLITE
        elif parsed.scheme in {"mysql", "mysql+connector"}:
            self.dialect = MYSQL
        else:
            raise ValueError(f"Unsupported database URL scheme: {parsed.scheme!r}")
        self._parsed = parsed
        self._conn: Any = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> Any:
        with self._lock:
            if self._conn is None:
                if self.dialect == SQLITE:
                    self._conn = self._connect_sqlite()
                else:
                    self._conn = self._connect_mysql()
                create_schema(self)
                logger.info("Database connected (%s)", self.dialect)
            return self._conn

    def _connect_sqlite(self) -> sqlite3.Connection:
        # sqlite:///relative.db, sqlite:////abs/path.db, sqlite:///:memory:
        raw_path = self.url[len("sqlite:///"):] if self.url.startswith("sqlite:///") else ""
        if raw_path in ("", ":memory:"):
            conn = sqlite3.connect(":memory:", check_same_thread=False)
        else:
            db_path = Path(raw_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _connect_mysql(self):
        parsed = self._parsed
        return mysql.connector.connect(
            host=parsed.hostname or "127.0.0.1",
            user=unquote(parsed.username or "root"),
            password=unquote(parsed.password or ""),
            database=parsed.path.lstrip("/") or "syncsphere",
            port=parsed.port or 3306,
            # rowcount must report matched rows for the conditional status updates
            client_flags=[ClientFlag.FOUND_ROWS],
        )

    @property
    def conn(self) -> Any:
        return self.connect()

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                finally:
                    self._conn = None

    def __enter__(self) -> "Database":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------
    def _sql(self, sql: str) -> str:
        return sql.replace("?", "%s") if self.dialect == MYSQL else sql

    def _cursor(self):
        if self.dialect == MYSQL:
            return self.conn.cursor(dictionary=True, buffered=True)
        return self.conn.cursor()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement and commit; returns the affected row count."""
        with self._lock:
            cursor = self._cursor()
            try:
                cursor.execute(self._sql(sql), tuple(params))
                self.conn.commit()
                return cursor.rowcount
            except (sqlite3.Error, MySQLError):
                self.conn.rollback()
                raise
            finally:
                cursor.close()

    def execute_script(self, statements: Sequence[str]) -> None:
        with self._lock:
            cursor = self._cursor()
            try:
                for statement in statements:
                    cursor.execute(statement)
                self.conn.commit()
            finally:
                cursor.close()

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        with self._lock:
            cursor = self._cursor()
            try:
                cursor.execute(self._sql(sql), tuple(params))
                row = cursor.fetchone()
                return dict(row) if row is not None else None
            finally:
                cursor.close()

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self._lock:
            cursor = self._cursor()
            try:
                cursor.execute(self._sql(sql), tuple(params))
                return [dict(row) for row in cursor.fetchall()]
            finally:
                cursor.close()

    def ping(self) -> bool:
        try:
            self.fetch_one("SELECT 1 AS ok")
            return True
        except (sqlite3.Error, MySQLError):
            logger.exception("Database ping failed")
            return False
