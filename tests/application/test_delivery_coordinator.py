"""Tests for notification creation and background delivery."""

from __future__ import annotations

from datetime import timedelta

import pytest

from notifier.application.use_cases.notifications import DeliveryCoordinator
from notifier.application.use_cases.notifications.delivery import (
    COUNT_DETAILED_EVENT,
    COUNT_EVENT,
    NEW_EVENT,
    URGENT_EVENT,
)
from notifier.domain.entities import (
    BatchPushResult,
    NotificationDraft,
    NotificationPriority,
    PushResult,
)
from notifier.domain.errors import StorageError, ValidationError
from notifier.infrastructure.repositories import NotificationRepository, UserRepository
from notifier.utils import utc_now


@pytest.fixture()
def coordinator(session_factory, push_gateway, realtime_bus, dispatcher):
    return DeliveryCoordinator(session_factory, push_gateway, realtime_bus, dispatcher)


def _draft(recipient_id, /, **overrides):
    values = {"recipient_id": recipient_id, "title": "Shift update", "body": "Check the board"}
    values.update(overrides)
    return NotificationDraft(**values)


def test_create_persists_before_returning(coordinator, session, create_user):
    user_id = create_user(device_token="token-1")

    formatted = coordinator.create(_draft(user_id), emit_realtime=False, send_push=False)

    assert formatted["user_id"] == user_id
    assert formatted["is_read"] is False
    assert NotificationRepository(session).unread_count(user_id) == 1


def test_create_without_push_never_calls_the_gateway(
    coordinator, dispatcher, push_gateway, realtime_bus, create_user
):
    user_id = create_user(device_token="token-1")

    coordinator.create(_draft(user_id), send_push=False)
    assert dispatcher.wait(timeout=5)

    assert push_gateway.call_count == 0
    assert realtime_bus.names_for(user_id) == [NEW_EVENT]


def test_high_priority_emits_urgent_event(coordinator, dispatcher, realtime_bus, create_user):
    user_id = create_user()

    formatted = coordinator.create(
        _draft(user_id, priority=NotificationPriority.HIGH), send_push=False
    )
    assert dispatcher.wait(timeout=5)

    assert realtime_bus.names_for(user_id) == [NEW_EVENT, URGENT_EVENT]
    assert realtime_bus.events[0][2] == {"notification": formatted}


def test_successful_push_is_recorded(coordinator, dispatcher, push_gateway, session, create_user):
    user_id = create_user(device_token="token-1")

    formatted = coordinator.create(_draft(user_id))
    assert dispatcher.wait(timeout=5)

    notification = NotificationRepository(session).get(formatted["id"])
    assert notification.is_push_sent is True
    assert notification.push_error is None
    token, message = push_gateway.single_calls[0]
    assert token == "token-1"
    assert message.data["notificationId"] == formatted["id"]


def test_explicit_device_token_skips_lookup(coordinator, dispatcher, push_gateway, create_user):
    user_id = create_user(device_token="stored-token")

    coordinator.create(_draft(user_id), device_token="explicit-token")
    assert dispatcher.wait(timeout=5)

    assert [token for token, _ in push_gateway.single_calls] == ["explicit-token"]


def test_invalid_token_is_recorded_and_cleared(
    coordinator, dispatcher, push_gateway, session, create_user
):
    user_id = create_user(device_token="dead-token")
    push_gateway.single_result = PushResult(
        success=False, error="registration-token-not-registered", is_invalid_token=True
    )

    formatted = coordinator.create(_draft(user_id))
    assert dispatcher.wait(timeout=5)

    notification = NotificationRepository(session).get(formatted["id"])
    assert notification.is_push_sent is False
    assert notification.push_error == "registration-token-not-registered"
    assert UserRepository(session).get_device_token(user_id) is None


def test_missing_token_is_a_silent_skip(coordinator, dispatcher, push_gateway, session, create_user):
    user_id = create_user(device_token=None)

    formatted = coordinator.create(_draft(user_id))
    assert dispatcher.wait(timeout=5)

    notification = NotificationRepository(session).get(formatted["id"])
    assert push_gateway.call_count == 0
    assert notification.is_push_sent is False
    assert notification.push_error is None


def test_unconfigured_gateway_leaves_row_pending(
    coordinator, dispatcher, push_gateway, session, create_user
):
    push_gateway.configured = False
    user_id = create_user(device_token="token-1")

    formatted = coordinator.create(_draft(user_id))
    assert dispatcher.wait(timeout=5)

    assert push_gateway.call_count == 0
    assert NotificationRepository(session).get(formatted["id"]).push_error is None


def test_gateway_exception_does_not_escape(
    coordinator, dispatcher, push_gateway, session, create_user
):
    user_id = create_user(device_token="token-1")

    def explode(token):
        raise RuntimeError("connection reset")

    push_gateway.single_result = explode

    formatted = coordinator.create(_draft(user_id))
    assert dispatcher.wait(timeout=5)

    assert not dispatcher.failures
    assert NotificationRepository(session).get(formatted["id"]).push_error == "connection reset"


@pytest.mark.parametrize("field", ["recipient_id", "title", "body"])
def test_create_rejects_blank_required_fields(coordinator, session, create_user, field):
    user_id = create_user()
    draft = _draft(user_id, **{field: "   "})

    with pytest.raises(ValidationError) as excinfo:
        coordinator.create(draft)

    assert excinfo.value.field == field
    assert NotificationRepository(session).unread_count(user_id) == 0


def test_create_for_many_with_no_recipients_is_a_no_op(coordinator, push_gateway):
    assert coordinator.create_for_many([], _draft(None)) == 0
    assert push_gateway.call_count == 0


def test_create_for_many_rejects_blank_recipient(coordinator, create_user):
    with pytest.raises(ValidationError):
        coordinator.create_for_many([create_user(), ""], _draft(None))


def test_create_for_many_sends_one_batch(
    coordinator, dispatcher, push_gateway, realtime_bus, session, create_user
):
    users = [create_user(device_token=f"token-{i}") for i in range(3)]
    silent = create_user(device_token=None)

    count = coordinator.create_for_many(users + [silent], _draft(None))
    assert dispatcher.wait(timeout=5)

    assert count == 4
    assert len(push_gateway.batch_calls) == 1
    assert sorted(push_gateway.batch_calls[0][0]) == ["token-0", "token-1", "token-2"]
    for user_id in users + [silent]:
        assert realtime_bus.names_for(user_id) == [NEW_EVENT]

    repository = NotificationRepository(session)
    for user_id in users:
        rows, _ = repository.list(user_id)
        assert rows[0].is_push_sent is True
    assert repository.select_pending_push(limit=10) == []


def test_create_for_many_keeps_rows_when_batch_send_raises(
    coordinator, dispatcher, push_gateway, session, create_user
):
    users = [create_user(device_token=f"token-{i}") for i in range(4)]
    push_gateway.batch_result = RuntimeError("provider unavailable")

    count = coordinator.create_for_many(users, _draft(None))
    assert dispatcher.wait(timeout=5)

    repository = NotificationRepository(session)
    assert count == 4
    for user_id in users:
        rows, total = repository.list(user_id)
        assert total == 1
        assert rows[0].is_push_sent is False
        assert rows[0].push_error == "PUSH_FAILED"


def test_create_for_many_clears_invalid_tokens(
    coordinator, dispatcher, push_gateway, session, create_user
):
    healthy = create_user(device_token="good-token")
    stale = create_user(device_token="dead-token")
    push_gateway.batch_result = BatchPushResult(
        success_count=1,
        failure_count=1,
        invalid_tokens=["dead-token"],
        failed_tokens=["dead-token"],
    )

    coordinator.create_for_many([healthy, stale], _draft(None))
    assert dispatcher.wait(timeout=5)

    notifications = NotificationRepository(session)
    accounts = UserRepository(session)
    assert accounts.get_device_token(healthy) == "good-token"
    assert accounts.get_device_token(stale) is None
    assert notifications.list(healthy)[0][0].is_push_sent is True
    assert notifications.list(stale)[0][0].push_error == "INVALID_TOKEN"


def test_publish_unread_counts(coordinator, realtime_bus, create_user):
    user_id = create_user()
    coordinator.create(_draft(user_id), emit_realtime=False, send_push=False)

    coordinator.publish_unread_count(user_id)
    coordinator.publish_unread_count_detailed(user_id)

    (_, count_event, count_payload), (_, detailed_event, detailed_payload) = realtime_bus.events
    assert (count_event, count_payload) == (COUNT_EVENT, {"count": 1})
    assert detailed_event == COUNT_DETAILED_EVENT
    assert detailed_payload["system"] == 1
    assert detailed_payload["total"] == 1


def test_broadcasts_reach_the_bus(coordinator, realtime_bus):
    coordinator.broadcast_to_role("admin", {"title": "Maintenance"})
    coordinator.broadcast_system({"title": "Restarting"})

    assert realtime_bus.role_events == [
        ("admin", "notification:broadcast", {"notification": {"title": "Maintenance"}})
    ]
    assert realtime_bus.broadcasts == [
        ("notification:system", {"notification": {"title": "Restarting"}})
    ]


class StatusWriteFailingRepository(NotificationRepository):
    def update_push_status(self, notification_id, success, error=None):
        raise StorageError("database is locked")

    def update_push_status_many(self, notification_ids, success, error=None):
        raise StorageError("database is locked")


def test_future_scheduled_notification_waits_for_the_sweep(
    coordinator, dispatcher, push_gateway, session, create_user
):
    user_id = create_user(device_token="token-1")

    formatted = coordinator.create(_draft(user_id, scheduled_at=utc_now() + timedelta(hours=2)))
    assert dispatcher.wait(timeout=5)

    notification = NotificationRepository(session).get(formatted["id"])
    assert push_gateway.call_count == 0
    assert notification.is_push_sent is False
    assert notification.push_error is None


def test_due_scheduled_notification_is_pushed_at_once(
    coordinator, dispatcher, push_gateway, create_user
):
    user_id = create_user(device_token="token-1")

    coordinator.create(_draft(user_id, scheduled_at=utc_now() - timedelta(minutes=1)))
    assert dispatcher.wait(timeout=5)

    assert [token for token, _ in push_gateway.single_calls] == ["token-1"]


def test_future_scheduled_fan_out_waits_for_the_sweep(
    coordinator, dispatcher, push_gateway, session, create_user
):
    users = [create_user(device_token=f"token-{i}") for i in range(2)]

    count = coordinator.create_for_many(
        users, _draft(None, scheduled_at=utc_now() + timedelta(hours=2))
    )
    assert dispatcher.wait(timeout=5)

    repository = NotificationRepository(session)
    assert count == 2
    assert push_gateway.call_count == 0
    for user_id in users:
        rows, _ = repository.list(user_id)
        assert rows[0].is_push_sent is False
        assert rows[0].push_error is None


def test_dead_token_is_cleared_when_status_write_fails(
    session_factory, push_gateway, realtime_bus, dispatcher, session, create_user
):
    user_id = create_user(device_token="dead")
    push_gateway.single_result = PushResult(
        success=False, error="registration-token-not-registered", is_invalid_token=True
    )
    coordinator = DeliveryCoordinator(
        session_factory,
        push_gateway,
        realtime_bus,
        dispatcher,
        store_factory=StatusWriteFailingRepository,
    )

    coordinator.create(_draft(user_id), emit_realtime=False)
    assert dispatcher.wait(timeout=5)

    assert UserRepository(session).get_device_token(user_id) is None
    assert [type(failure.error) for failure in dispatcher.failures] == [StorageError]


def test_dead_fan_out_tokens_are_cleared_when_status_write_fails(
    session_factory, push_gateway, realtime_bus, dispatcher, session, create_user
):
    healthy = create_user(device_token="good-token")
    stale = create_user(device_token="dead-token")
    push_gateway.batch_result = BatchPushResult(
        success_count=1,
        failure_count=1,
        invalid_tokens=["dead-token"],
        failed_tokens=["dead-token"],
    )
    coordinator = DeliveryCoordinator(
        session_factory,
        push_gateway,
        realtime_bus,
        dispatcher,
        store_factory=StatusWriteFailingRepository,
    )

    coordinator.create_for_many([healthy, stale], _draft(None), emit_realtime=False)
    assert dispatcher.wait(timeout=5)

    accounts = UserRepository(session)
    assert accounts.get_device_token(stale) is None
    assert accounts.get_device_token(healthy) == "good-token"


def test_first_push_carries_the_data_document(
    coordinator, dispatcher, push_gateway, create_user
):
    user_id = create_user(device_token="token-1")

    formatted = coordinator.create(_draft(user_id, data={"incidentCode": "INC-7"}))
    assert dispatcher.wait(timeout=5)

    _, message = push_gateway.single_calls[0]
    assert message.data["incidentCode"] == "INC-7"
    assert message.data["notificationId"] == formatted["id"]
