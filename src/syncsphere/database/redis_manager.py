"""
Redis cache management for SyncSphere.

Values are stored as JSON strings with a TTL. The cache is an optimisation
only: every Redis failure is logged and reported as a miss so callers fall
through to the database.
"""

import json
import logging
from typing import Any, Dict, Optional

import redis

from syncsphere.config import RedisConfig

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Manages cache reads and writes for SyncSphere.

    Key layout:
    - user:<userId> -> user profile (15 min)
    - device:<deviceId> -> device record (30 min)
    - connection:<connectionId> -> device id (60 min)
    - recovery:<sessionId> -> recovery session (60 min)
    """

    def __init__(self, client: Optional[redis.Redis] = None):
        """
        Args:
            client: Redis client; ``None`` runs the manager with caching disabled.
        """
        self.client = client

    @classmethod
    def from_config(cls, config: RedisConfig) -> "CacheManager":
        if not config.enabled:
            logger.info("Redis disabled; running without cache (set REDIS_ENABLED=true to enable)")
            return cls(None)

        client = redis.Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=True,
            socket_connect_timeout=5,
        )
        manager = cls(client)
        manager._test_connection()
        return manager

    def _test_connection(self) -> None:
        """Ping Redis; an unreachable server leaves the manager in disabled mode."""
        try:
            self.client.ping()
            logger.info("Redis connection established successfully")
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self.client = None

    @property
    def enabled(self) -> bool:
        return self.client is not None

    # ==================== CACHE OPERATIONS ====================

    def get(self, key: str) -> Optional[Any]:
        if self.client is None:
            return None
        try:
            value = self.client.get(key)
            return json.loads(value) if value else None
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        if self.client is None:
            return False
        try:
            self.client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"Redis set error for {key}: {e}")
            return False

    def delete(self, *keys: str) -> bool:
        keys = tuple(key for key in keys if key)
        if self.client is None or not keys:
            return False
        try:
            self.client.delete(*keys)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis delete error for {keys}: {e}")
            return False

    def flush(self) -> bool:
        """Delete every key in the selected Redis database."""
        if self.client is None:
            return False
        try:
            self.client.flushdb()
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis flush error: {e}")
            return False

    # ==================== UTILITY OPERATIONS ====================

    def health_check(self) -> Dict[str, Any]:
        if self.client is None:
            return {"status": "disabled"}
        try:
            info = self.client.info()
            return {
                "status": "healthy",
                "connected_clients": info.get('connected_clients', 0),
                "used_memory": info.get('used_memory_human', 'unknown'),
                "total_keys": self.client.dbsize(),
            }
        except redis.RedisError as e:
            return {"status": "unhealthy", "error": str(e)}

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
