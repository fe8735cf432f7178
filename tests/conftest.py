import asyncio
import random
import sys
from pathlib import Path

import pytest
import redis

# Make src importable
REPO_ROOT = Path(__file__).resolve().parent.parent
SRC = REPO_ROOT / "src"
sys.path.insert(0, str(SRC))

from syncsphere.database import CacheManager, Database, Store  # noqa: E402
from syncsphere.services import (  # noqa: E402
    DataRecoveryService,
    DeviceService,
    EventBus,
    NotificationService,
    RecoveryPhaseSimulator,
    RecoverySessionManager,
    UserService,
)


class FakeRedis:
    """In-memory stand-in for ``redis.Redis`` with ``decode_responses=True``."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.fail = False
        self.closed = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis is down")

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def flushdb(self):
        self._check()
        self.data.clear()
        self.ttls.clear()
        return True

    def info(self):
        self._check()
        return {"connected_clients": 1, "used_memory_human": "1K"}

    def dbsize(self):
        self._check()
        return len(self.data)

    def close(self):
        self.closed = True


async def no_delay(_seconds):
    # Yield so other tasks interleave with the phase loop.
    await asyncio.sleep(0)


@pytest.fixture
def store(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'syncsphere.db'}")
    db.connect()
    store = Store(db)
    yield store
    store.close()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return CacheManager(fake_redis)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def user(store):
    return store.create_user("alice@example.com", first_name="Alice", last_name="Smith")


@pytest.fixture
def device_service(store, cache):
    return DeviceService(store, cache)


@pytest.fixture
def user_service(store, cache):
    return UserService(store, cache)


@pytest.fixture
def notification_service(store, events):
    return NotificationService(store, events)


@pytest.fixture
def device(device_service, user):
    return device_service.connect_device(
        user.id,
        device_type="android",
        device_model="Pixel 8",
        os_version="14",
        serial_number="SN-001",
        capabilities={"wifi": True, "storage": 64_000_000_000},
    )


@pytest.fixture
def sessions():
    return RecoverySessionManager()


@pytest.fixture
def simulator(store, cache, events, sessions):
    return RecoveryPhaseSimulator(
        store, cache, events, sessions,
        delay_scale=0, sleep=no_delay, rng=random.Random(7),
    )


@pytest.fixture
def recovery_service(store, cache, events, sessions, simulator):
    return DataRecoveryService(store, cache, events, sessions=sessions, simulator=simulator)
