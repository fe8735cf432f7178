import asyncio

import pytest

from syncsphere.exceptions import (
    InvalidStateError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from syncsphere.models import RecoveryStatus
from syncsphere.services.cache import recovery_key


def test_start_requires_connected_device(recovery_service, device_service, store, user, device):
    device_service.disconnect_device(user.id, device.id)

    with pytest.raises(InvalidStateError, match="Device must be connected to start recovery"):
        asyncio.run(recovery_service.start_recovery(user.id, device.id, "deleted_files"))

    assert store.count_user_sessions(user.id) == 0


def test_start_rejects_foreign_device(recovery_service, store, device):
    intruder = store.create_user("mallory@example.com")

    with pytest.raises(NotFoundError, match="Device not found or not owned by user"):
        asyncio.run(recovery_service.start_recovery(intruder.id, device.id, "deleted_files"))
    with pytest.raises(NotFoundError, match="User not found"):
        asyncio.run(recovery_service.start_recovery("u_missing", device.id, "deleted_files"))


def test_start_validates_type_and_options(recovery_service, user, device):
    with pytest.raises(ValidationError) as bad_type:
        asyncio.run(recovery_service.start_recovery(user.id, device.id, "alien_abduction"))
    assert bad_type.value.field == "recoveryType"

    with pytest.raises(ValidationError) as bad_option:
        asyncio.run(recovery_service.start_recovery(user.id, device.id, "deleted_files", {"repair_mode": "fast"}))
    assert bad_option.value.field == "options"


def test_third_concurrent_session_is_rejected(recovery_service, store, user, device):
    async def scenario():
        await recovery_service.start_recovery(user.id, device.id, "deleted_files")
        await recovery_service.start_recovery(user.id, device.id, "corrupted_files")
        try:
            with pytest.raises(LimitExceededError):
                await recovery_service.start_recovery(user.id, device.id, "virus_attack")
        finally:
            await recovery_service.shutdown()

    asyncio.run(scenario())

    assert store.count_user_sessions(user.id) == 2


def test_recovery_runs_to_completion(recovery_service, store, user, device, fake_redis):
    async def scenario():
        session = await recovery_service.start_recovery(user.id, device.id, "deleted_files", {"deep_scan": True})
        assert recovery_key(session.id) in fake_redis.data
        await recovery_service.sessions.wait_idle()
        return session

    session = asyncio.run(scenario())

    finished = store.find_session(session.id)
    assert finished.status == RecoveryStatus.COMPLETED.value
    assert finished.progress == 100
    assert session.id not in recovery_service.sessions
    assert recovery_key(session.id) not in fake_redis.data


def test_pause_rejected_before_run_starts(recovery_service, user, device):
    async def scenario():
        session = await recovery_service.start_recovery(user.id, device.id, "deleted_files")
        try:
            with pytest.raises(InvalidStateError, match="Cannot pause"):
                await recovery_service.pause_recovery(session.id, user.id)
        finally:
            await recovery_service.shutdown()

    asyncio.run(scenario())


def test_pause_then_resume_restarts_run(recovery_service, store, user, device):
    async def scenario():
        session = await recovery_service.start_recovery(user.id, device.id, "deleted_files")
        await asyncio.sleep(0)

        paused = await recovery_service.pause_recovery(session.id, user.id)
        assert paused.status == RecoveryStatus.CANCELLED.value
        await recovery_service.sessions.wait_idle()
        assert recovery_service.sessions.get(session.id).paused

        with pytest.raises(InvalidStateError, match="Cannot pause"):
            await recovery_service.pause_recovery(session.id, user.id)

        resumed = await recovery_service.resume_recovery(session.id, user.id)
        assert resumed.status == RecoveryStatus.IN_PROGRESS.value
        assert not recovery_service.sessions.get(session.id).paused
        await recovery_service.sessions.wait_idle()
        return session

    session = asyncio.run(scenario())

    assert store.find_session(session.id).status == RecoveryStatus.COMPLETED.value


def test_resume_requires_cancelled_session(recovery_service, user, device):
    async def scenario():
        session = await recovery_service.start_recovery(user.id, device.id, "deleted_files")
        try:
            with pytest.raises(InvalidStateError, match="Can only resume cancelled recovery sessions"):
                await recovery_service.resume_recovery(session.id, user.id)
        finally:
            await recovery_service.shutdown()

    asyncio.run(scenario())


def test_cancel_stops_run_and_is_not_repeatable(recovery_service, store, user, device):
    async def scenario():
        session = await recovery_service.start_recovery(user.id, device.id, "deleted_files")
        await asyncio.sleep(0)

        cancelled = await recovery_service.cancel_recovery(session.id, user.id)
        assert cancelled.status == RecoveryStatus.CANCELLED.value
        assert session.id not in recovery_service.sessions

        with pytest.raises(InvalidStateError):
            await recovery_service.cancel_recovery(session.id, user.id)
        await recovery_service.sessions.wait_idle()
        return session

    session = asyncio.run(scenario())

    stopped = store.find_session(session.id)
    assert stopped.status == RecoveryStatus.CANCELLED.value
    assert stopped.progress < 100


def test_session_reads_are_owner_scoped(recovery_service, store, user, device):
    session = store.create_session(user.id, device.id, "deleted_files")
    intruder = store.create_user("mallory@example.com")

    with pytest.raises(NotFoundError):
        asyncio.run(recovery_service.get_recovery_session(session.id, intruder.id))
    assert asyncio.run(recovery_service.get_recovery_session(session.id, user.id)).id == session.id


def test_progress_report(recovery_service, store, user, device):
    session = store.create_session(user.id, device.id, "deleted_files")
    store.start_session(session.id)
    store.update_session_progress(session.id, 60, total_files=200, recovered_files=50, failed_files=4)

    report = asyncio.run(recovery_service.get_recovery_progress(session.id, user.id))

    assert report["progress"] == 60
    assert report["success_rate"] == 0.25
    assert report["success_percentage"] == 25
    assert report["current_phase"] is None
    assert report["estimated_time_remaining"] is None


def test_stats_and_cleanup(recovery_service, store, user, device):
    session = store.create_session(user.id, device.id, "formatted_drive")
    store.cancel_session(session.id)

    stats = asyncio.run(recovery_service.get_recovery_stats(user.id, days=7))
    assert stats[0]["recovery_type"] == "formatted_drive"
    assert stats[0]["total_sessions"] == 1

    assert asyncio.run(recovery_service.cleanup_old_sessions(days_old=90)) == 0


def test_cleanup_invalidates_cached_sessions(recovery_service, store, user, device, fake_redis):
    session = store.create_session(user.id, device.id, "deleted_files")
    store.cancel_session(session.id)
    asyncio.run(recovery_service.get_recovery_session(session.id, user.id))
    assert recovery_key(session.id) in fake_redis.data

    assert asyncio.run(recovery_service.cleanup_old_sessions(days_old=-1)) == 1

    assert recovery_key(session.id) not in fake_redis.data
    with pytest.raises(NotFoundError):
        asyncio.run(recovery_service.get_recovery_session(session.id, user.id))


def test_cleanup_releases_paused_runs(recovery_service, store, user, device):
    async def scenario():
        session = await recovery_service.start_recovery(user.id, device.id, "deleted_files")
        await asyncio.sleep(0)
        await recovery_service.pause_recovery(session.id, user.id)
        await recovery_service.sessions.wait_idle()
        assert session.id in recovery_service.sessions
        assert recovery_service.sessions.running_count == 0

        await recovery_service.cleanup_old_sessions(days_old=-1)
        return session

    session = asyncio.run(scenario())

    assert session.id not in recovery_service.sessions
    assert store.find_session(session.id) is None
