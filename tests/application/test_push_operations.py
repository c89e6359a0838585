"""Tests for producers, manual pushes and device token hygiene."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from notifier.application.use_cases.notifications import (
    DeliveryCoordinator,
    TokenHygiene,
    send_alert_notification,
    send_announcement_notification,
    send_approval_notification,
    send_chat_notification,
    send_incident_notification,
    send_push_to_role,
    send_push_to_users,
    send_system_notification,
    send_test_push,
)
from notifier.domain.entities import (
    BatchPushResult,
    DeviceTokenPair,
    PushMessage,
    PushResult,
)
from notifier.domain.errors import NotFoundError, ValidationError
from notifier.infrastructure.repositories import NotificationRepository, UserRepository


@pytest.fixture()
def hygiene(session_factory):
    return TokenHygiene(session_factory)


@pytest.fixture()
def coordinator(session_factory, push_gateway, realtime_bus, dispatcher):
    return DeliveryCoordinator(session_factory, push_gateway, realtime_bus, dispatcher)


def test_producers_fill_category_specific_fields(coordinator, dispatcher, create_user):
    user_id = create_user()

    incident = send_incident_notification(
        coordinator, user_id=user_id, title="New incident", body="Road blocked", incident_id="inc-1"
    )
    chat = send_chat_notification(
        coordinator, user_id=user_id, title="Ana", body="On my way", conversation_id="c-9", sender_id=None
    )
    approval = send_approval_notification(
        coordinator, user_id=user_id, title="Approve rider", body="Pending", target_user_id="u-5"
    )
    alert = send_alert_notification(coordinator, user_id=user_id, title="Storm", body="Stay inside")
    system = send_system_notification(coordinator, user_id=user_id, title="Welcome", body="Hi")
    assert dispatcher.wait(timeout=5)

    assert (incident["category"], incident["action_url"]) == ("incident", "/incidents/inc-1")
    assert (chat["category"], chat["action_type"]) == ("chat", "reply")
    assert (approval["type"], approval["priority"]) == ("action", "high")
    assert (alert["type"], alert["priority"]) == ("warning", "high")
    assert system["category"] == "system"


def test_announcement_fans_out(coordinator, dispatcher, session, create_user):
    readers = [create_user() for _ in range(3)]

    count = send_announcement_notification(
        coordinator, user_ids=readers, title="Holiday", body="Office closed", announcement_id="a-1"
    )
    assert dispatcher.wait(timeout=5)

    repository = NotificationRepository(session)
    assert count == 3
    for reader in readers:
        items, _ = repository.list(reader)
        assert items[0].action_url == "/announcements/a-1"


def test_test_push_requires_a_registered_device(session, push_gateway, hygiene, create_user):
    user_id = create_user(device_token=None)

    with pytest.raises(ValidationError):
        send_test_push(session, push_gateway, hygiene, user_id)
    with pytest.raises(NotFoundError):
        send_test_push(session, push_gateway, hygiene, "missing-user")
    assert push_gateway.call_count == 0


def test_test_push_clears_dead_token(session, push_gateway, hygiene, create_user):
    user_id = create_user(name="Rosa", device_token="dead-token")
    push_gateway.single_result = PushResult(
        success=False, error="registration-token-not-registered", is_invalid_token=True
    )

    result = send_test_push(session, push_gateway, hygiene, user_id)

    assert result.success is False
    assert "Rosa" in push_gateway.single_calls[0][1].body
    assert UserRepository(session).get_device_token(user_id) is None


def test_push_to_role_without_devices_reports_error(session, push_gateway, hygiene, create_user):
    create_user(role="dispatcher", device_token=None)

    result = send_push_to_role(
        session, push_gateway, hygiene, "dispatcher", PushMessage(title="t", body="b")
    )

    assert result.success is False
    assert result.error == "NO_USERS_WITH_TOKENS"
    assert push_gateway.call_count == 0


def test_push_to_users_counts_outcomes(session, push_gateway, hygiene, create_user):
    first = create_user(device_token="token-a")
    second = create_user(device_token="token-b")
    push_gateway.batch_result = BatchPushResult(
        success_count=1, failure_count=1, invalid_tokens=["token-b"], failed_tokens=["token-b"]
    )

    result = send_push_to_users(
        session, push_gateway, hygiene, [first, second], PushMessage(title="t", body="b")
    )

    assert result.success is True
    assert (result.sent_count, result.failed_count, result.invalid_token_count) == (1, 1, 1)
    assert result.total_devices == 2
    assert UserRepository(session).get_device_token(second) is None


def test_hygiene_keeps_a_newer_token(hygiene, session, create_user):
    user_id = create_user(device_token="fresh-token")

    assert hygiene.clear(user_id, "stale-token") is False
    assert hygiene.clear("", "stale-token") is False
    assert hygiene.clear_many([DeviceTokenPair(user_id=user_id, token="stale-token")]) == 0
    assert UserRepository(session).get_device_token(user_id) == "fresh-token"


def test_hygiene_swallows_storage_failures(session_factory):
    class BrokenStore:
        def __init__(self, session):
            pass

        def clear_device_token_if_matches(self, user_id, token):
            raise OperationalError("UPDATE user", {}, Exception("database is locked"))

        def clear_device_tokens_if_match(self, pairs):
            raise OperationalError("UPDATE user", {}, Exception("database is locked"))

    hygiene = TokenHygiene(session_factory, store_factory=BrokenStore)

    assert hygiene.clear("user-1", "token") is False
    assert hygiene.clear_many([DeviceTokenPair(user_id="user-1", token="token")]) == 0
