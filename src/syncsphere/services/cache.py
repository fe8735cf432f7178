"""Cache-aside helpers shared by the user, device and recovery services."""

import logging
from typing import Any, Callable, Dict, Optional, TypeVar

from syncsphere.database.redis_manager import CacheManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_TTL = 15 * 60
DEVICE_TTL = 30 * 60
CONNECTION_TTL = 60 * 60
RECOVERY_TTL = 60 * 60


def user_key(user_id: str) -> str:
    return f"user:{user_id}"


def device_key(device_id: str) -> str:
    return f"device:{device_id}"


def connection_key(connection_id: str) -> str:
    return f"connection:{connection_id}"


def recovery_key(recovery_id: str) -> str:
    return f"recovery:{recovery_id}"


def read_through(
    cache: CacheManager,
    key: str,
    ttl: int,
    loader: Callable[[], Optional[T]],
    decode: Callable[[Dict[str, Any]], T],
    encode: Callable[[T], Any] = lambda value: value.to_dict(),  # type: ignore[attr-defined]
) -> Optional[T]:
    """Return the cached value for ``key``, loading and caching it on a miss."""
    cached = cache.get(key)
    if cached is not None:
        try:
            return decode(cached)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding malformed cache entry %s", key)
            cache.delete(key)

    value = loader()
    if value is not None:
        cache.set(key, encode(value), ttl)
    return value
