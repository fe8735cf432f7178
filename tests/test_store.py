from datetime import timedelta

from syncsphere.models import RecoveryStatus
from syncsphere.models.base import utcnow


def _session(store, user, device, recovery_type="deleted_files"):
    return store.create_session(user.id, device.id, recovery_type, {"deep_scan": True})


def test_create_and_find_user(store):
    user = store.create_user("bob@example.com", first_name="Bob", preferences={"interface": {"theme": "dark"}})

    assert user.id.startswith("u_")
    assert store.find_user_by_email("bob@example.com").id == user.id
    assert store.find_user_by_id(user.id).preferences == {"interface": {"theme": "dark"}}
    assert store.find_user_by_id("u_missing") is None


def test_update_user_ignores_unknown_columns(store, user):
    updated = store.update_user(user.id, {"first_name": "Alicia", "id": "u_hijack", "is_active": False})

    assert updated.id == user.id
    assert updated.first_name == "Alicia"
    assert updated.is_active is False


def test_connect_device_reuses_row_for_same_serial(store, user):
    first = store.connect_device(user_id=user.id, device_type="ios", device_model="iPhone 15",
                                 os_version="17.1", connection_id="c1", serial_number="ABC")
    store.disconnect_device(first.id)
    second = store.connect_device(user_id=user.id, device_type="ios", device_model="iPhone 15",
                                  os_version="17.2", connection_id="c2", serial_number="ABC")

    assert second.id == first.id
    assert second.status == "connected"
    assert second.connection_id == "c2"
    assert second.os_version == "17.2"
    assert store.count_user_devices(user.id) == 1


def test_soft_deleted_device_is_hidden(store, user, device):
    assert store.soft_delete_device(device.id) is True

    assert store.find_device_by_id(device.id) is None
    assert store.count_user_devices(user.id) == 0
    assert store.soft_delete_device(device.id) is False


def test_new_session_is_pending(store, user, device):
    session = _session(store, user, device)

    assert session.status == RecoveryStatus.PENDING.value
    assert session.progress == 0
    assert session.session_type == "scan"
    assert session.recovery_options == {"deep_scan": True}
    assert store.count_active_sessions(user.id) == 1


def test_progress_update_requires_in_progress(store, user, device):
    session = _session(store, user, device)

    assert store.update_session_progress(session.id, 10) is None
    assert store.start_session(session.id).status == RecoveryStatus.IN_PROGRESS.value

    updated = store.update_session_progress(session.id, 10, total_files=200, scan_results={"found_files": 5})
    assert updated.progress == 10
    assert updated.total_files == 200
    assert updated.scan_results == {"found_files": 5}


def test_cancel_is_refused_once_finished(store, user, device):
    session = _session(store, user, device)
    store.start_session(session.id)
    completed = store.complete_session(session.id)

    assert completed.status == RecoveryStatus.COMPLETED.value
    assert completed.progress == 100
    assert completed.completed_at is not None
    assert store.cancel_session(session.id) is None
    assert store.mark_session_failed(session.id, "late failure") is None
    assert store.find_session(session.id).status == RecoveryStatus.COMPLETED.value


def test_pause_and_resume_transitions(store, user, device):
    session = _session(store, user, device)

    assert store.pause_session(session.id) is None
    store.start_session(session.id)

    paused = store.pause_session(session.id)
    assert paused.status == RecoveryStatus.CANCELLED.value

    resumed = store.resume_session(session.id)
    assert resumed.status == RecoveryStatus.IN_PROGRESS.value
    assert resumed.completed_at is None
    assert store.resume_session(session.id) is None


def test_recovery_stats_groups_by_type(store, user, device):
    done = _session(store, user, device)
    store.start_session(done.id)
    store.update_session_progress(done.id, 90, total_files=100, recovered_files=80, failed_files=10)
    store.complete_session(done.id)
    failed = _session(store, user, device, "formatted_drive")
    store.mark_session_failed(failed.id, "boom")

    stats = {row["recovery_type"]: row for row in store.recovery_stats(utcnow() - timedelta(days=1), user.id)}

    assert stats["deleted_files"]["completed_sessions"] == 1
    assert stats["deleted_files"]["total_recovered_files"] == 80
    assert stats["deleted_files"]["avg_completion_rate"] == 100.0
    assert stats["formatted_drive"]["failed_sessions"] == 1


def test_cleanup_only_removes_finished_sessions(store, user, device):
    active = _session(store, user, device)
    finished = _session(store, user, device)
    store.cancel_session(finished.id)

    deleted = store.cleanup_old_sessions(utcnow() + timedelta(seconds=1))

    assert deleted == [finished.id]
    assert store.find_session(active.id) is not None
    assert store.find_session(finished.id) is None


def test_notifications_inbox(store, user):
    first = store.create_notification(user.id, "recovery_completed", "Done", "All good", {"recovery_id": "r_1"})
    store.create_notification(user.id, "recovery_failed", "Failed", "Oops")

    assert store.count_unread_notifications(user.id) == 2
    assert store.mark_notification_read(first.id, user.id) is True
    assert store.mark_notification_read(first.id, "u_other") is False
    assert first.id not in [n.id for n in store.list_notifications(user.id, unread_only=True)]
    assert store.mark_all_notifications_read(user.id) == 1
    assert store.count_unread_notifications(user.id) == 0


def test_device_activity_log(store, user, device):
    store.log_device_activity(user.id, device.id, "sync_started", {"items": 3})

    actions = [entry["action"] for entry in store.list_device_activity(device.id)]
    assert "sync_started" in actions
