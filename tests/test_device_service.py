import pytest

from syncsphere.exceptions import LimitExceededError, NotFoundError, ValidationError
from syncsphere.services.cache import connection_key, device_key
from syncsphere.services.device_service import DeviceService


def _connect(service, user_id, serial, device_type="ios"):
    return service.connect_device(
        user_id,
        device_type=device_type,
        device_model="iPhone 15",
        os_version="17.0",
        serial_number=serial,
    )


def test_connect_caches_device_and_connection(device_service, user, fake_redis):
    device = _connect(device_service, user.id, "SN-A")

    assert device.status == "connected"
    assert len(device.connection_id) == 32
    assert device.device_name == "iPhone 15 (ios)"
    assert device_key(device.id) in fake_redis.data
    assert connection_key(device.connection_id) in fake_redis.data
    assert device_service.get_device_by_connection_id(device.connection_id).id == device.id


def test_free_tier_device_limit(device_service, user):
    for index in range(3):
        _connect(device_service, user.id, f"SN-{index}")

    with pytest.raises(LimitExceededError):
        _connect(device_service, user.id, "SN-new")

    # a known serial reconnects instead of counting as a fourth device
    reconnected = _connect(device_service, user.id, "SN-1")
    assert reconnected.serial_number == "SN-1"


def test_enterprise_tier_is_unlimited(store, device_service):
    owner = store.create_user("corp@example.com", subscription_tier="enterprise")
    for index in range(12):
        _connect(device_service, owner.id, f"SN-{index}")

    assert store.count_user_devices(owner.id) == 12


def test_unknown_user_and_type_rejected(device_service, user):
    with pytest.raises(NotFoundError):
        _connect(device_service, "u_missing", "SN-X")
    with pytest.raises(ValidationError):
        _connect(device_service, user.id, "SN-X", device_type="windows-phone")


def test_disconnect_invalidates_cache(device_service, user, device, fake_redis):
    old_connection = device.connection_id

    disconnected = device_service.disconnect_device(user.id, device.id)

    assert disconnected.status == "disconnected"
    assert disconnected.connection_id is None
    assert device_key(device.id) not in fake_redis.data
    assert connection_key(old_connection) not in fake_redis.data
    assert device_service.get_device(user.id, device.id).status == "disconnected"


def test_update_device_filters_fields(device_service, user, device):
    updated = device_service.update_device(user.id, device.id, {"device_name": "Work phone", "user_id": "u_x"})

    assert updated.device_name == "Work phone"
    assert updated.user_id == user.id
    with pytest.raises(ValidationError):
        device_service.update_device(user.id, device.id, {"serial_number": "NEW"})


def test_update_status_validates_value(device_service, user, device):
    assert device_service.update_device_status(user.id, device.id, "error").status == "error"
    with pytest.raises(ValidationError):
        device_service.update_device_status(user.id, device.id, "exploded")


def test_other_users_cannot_see_device(store, device_service, device):
    intruder = store.create_user("mallory@example.com")

    with pytest.raises(NotFoundError):
        device_service.get_device(intruder.id, device.id)
    with pytest.raises(NotFoundError):
        device_service.delete_device(intruder.id, device.id)


def test_delete_device_logs_activity(device_service, user, device):
    activity_before = device_service.list_device_activity(user.id, device.id)

    assert device_service.delete_device(user.id, device.id) is True
    with pytest.raises(NotFoundError):
        device_service.get_device(user.id, device.id)
    assert [entry["action"] for entry in activity_before] == ["device_connected"]


def test_list_user_devices_paginates(device_service, store):
    owner = store.create_user("pager@example.com", subscription_tier="basic")
    for index in range(5):
        _connect(device_service, owner.id, f"SN-{index}")

    result = device_service.list_user_devices(owner.id, page=2, limit=2)

    assert len(result["devices"]) == 2
    assert result["pagination"] == {"page": 2, "limit": 2, "total": 5, "pages": 3}


def test_compatibility_for_old_ios_without_network():
    report = DeviceService.check_compatibility("ios", "iOS 11.4", {"storage": 500_000_000})

    assert report["supported"] is False
    assert report["features"]["sync"] is False
    assert "Device requires internet connectivity" in report["limitations"]
    assert report["recommendations"] == ["Free up storage space for optimal performance"]


def test_compatibility_for_modern_android():
    report = DeviceService.check_compatibility("android", "14", {"wifi": True, "storage": 64_000_000_000})

    assert report["supported"] is True
    assert report["limitations"] == []
    assert report["features"]["backup"] is True


def test_reconnect_drops_stale_connection_key(device_service, store, user, device, fake_redis):
    old_connection = device.connection_id
    assert device_service.get_device_by_connection_id(old_connection).id == device.id

    reconnected = _connect(device_service, user.id, device.serial_number, device_type="android")

    assert reconnected.id == device.id
    assert reconnected.connection_id != old_connection
    assert connection_key(old_connection) not in fake_redis.data
    assert store.find_device_by_connection_id(old_connection) is None
    with pytest.raises(NotFoundError):
        device_service.get_device_by_connection_id(old_connection)
    assert device_service.get_device_by_id(device.id).connection_id == reconnected.connection_id


def test_activity_log_failure_does_not_fail_device_writes(device_service, store, user, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("audit table is gone")

    monkeypatch.setattr(store, "log_device_activity", broken)

    device = _connect(device_service, user.id, "SN-AUDIT")
    assert device.status == "connected"
    assert device_service.disconnect_device(user.id, device.id).status == "disconnected"
    assert device_service.delete_device(user.id, device.id) is True
