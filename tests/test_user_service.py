import json

import pytest

from syncsphere.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from syncsphere.services.cache import USER_TTL, user_key


def test_create_user_normalises_email(user_service):
    user = user_service.create_user("  Carol@Example.COM ", first_name="Carol")

    assert user.email == "carol@example.com"
    with pytest.raises(ConflictError):
        user_service.create_user("carol@example.com")


def test_create_user_rejects_unknown_tier(user_service):
    with pytest.raises(ValidationError):
        user_service.create_user("dan@example.com", subscription_tier="platinum")


def test_profile_is_cached_without_credentials(store, user_service, fake_redis):
    user = store.create_user("erin@example.com", password_hash="hashed")

    profile = user_service.get_user_profile(user.id)

    cached = json.loads(fake_redis.data[user_key(user.id)])
    assert profile.email == "erin@example.com"
    assert "password_hash" not in cached
    assert fake_redis.ttls[user_key(user.id)] == USER_TTL


def test_missing_user(user_service):
    with pytest.raises(NotFoundError):
        user_service.get_user_profile("u_missing")


def test_update_profile_invalidates_cache(user_service, user, fake_redis):
    user_service.get_user_profile(user.id)

    updated = user_service.update_user_profile(user.id, {"first_name": "Ally", "role": "admin"})

    assert updated.first_name == "Ally"
    assert updated.role == "user"
    assert user_key(user.id) not in fake_redis.data
    assert user_service.get_user_profile(user.id).first_name == "Ally"


def test_update_profile_requires_known_fields(user_service, user):
    with pytest.raises(ValidationError):
        user_service.update_user_profile(user.id, {"role": "admin"})


def test_update_profile_email_conflict(user_service, store, user):
    store.create_user("taken@example.com")

    with pytest.raises(ConflictError):
        user_service.update_user_profile(user.id, {"email": "taken@example.com"})


def test_update_preferences_merges_sections(user_service, user):
    user_service.update_preferences(user.id, {"interface": {"theme": "dark"}})
    merged = user_service.update_preferences(user.id, {
        "interface": {"language": "fr"},
        "privacy": {"allow_analytics": False},
        "unknown": {"x": 1},
    })

    assert merged == {
        "interface": {"theme": "dark", "language": "fr"},
        "privacy": {"allow_analytics": False},
    }


@pytest.mark.parametrize("preferences", [
    {"interface": {"theme": "neon"}},
    {"privacy": {"share_usage_data": "yes"}},
    {"notifications": {"email": ["spam"]}},
])
def test_update_preferences_rejects_bad_values(user_service, user, preferences):
    with pytest.raises(ValidationError):
        user_service.update_preferences(user.id, preferences)


def test_user_stats(user_service, store, user, device):
    store.create_notification(user.id, "info", "Hello", "Welcome")
    session = store.create_session(user.id, device.id, "deleted_files")
    store.start_session(session.id)
    store.complete_session(session.id)

    stats = user_service.get_user_stats(user.id)

    assert stats["total_devices"] == 1
    assert stats["connected_devices"] == 1
    assert stats["total_recoveries"] == 1
    assert stats["completed_recoveries"] == 1
    assert stats["active_recoveries"] == 0
    assert stats["unread_notifications"] == 1
    assert stats["subscription_tier"] == "free"


def test_deactivated_user_is_rejected(user_service, user):
    user_service.deactivate_user(user.id)

    with pytest.raises(InvalidStateError):
        user_service.require_active_user(user.id)
