"""
Storage package for SyncSphere.

Provides the relational store and the Redis cache manager.
"""

from syncsphere.database.connection import Database
from syncsphere.database.redis_manager import CacheManager
from syncsphere.database.store import Store

__all__ = [
    'CacheManager',
    'Database',
    'Store',
]
