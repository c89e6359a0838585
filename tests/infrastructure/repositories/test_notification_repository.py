"""Tests for the SQLAlchemy notification store."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import update

from notifier.domain.entities import (
    NotificationCategory,
    NotificationDraft,
    NotificationFilters,
    NotificationPriority,
    NotificationType,
)
from notifier.infrastructure.models import NotificationModel
from notifier.infrastructure.repositories import NotificationRepository
from notifier.utils import utc_now, utc_now_naive


def _draft(user_id: str, **overrides) -> NotificationDraft:
    values = {"recipient_id": user_id, "title": "Title", "body": "Body"}
    values.update(overrides)
    return NotificationDraft(**values)


def _set_created_at(session, notification_id: str, value: datetime) -> None:
    session.execute(
        update(NotificationModel)
        .where(NotificationModel.id == notification_id)
        .values(created_at=value)
    )
    session.commit()


@pytest.fixture()
def repository(session) -> NotificationRepository:
    return NotificationRepository(session)


def test_unread_count_counts_only_visible_unread_rows(repository, create_user):
    user_id = create_user()
    other_id = create_user()

    repository.insert(_draft(user_id))
    repository.insert(_draft(user_id, expires_at=utc_now() + timedelta(days=1)))
    read_id = repository.insert(_draft(user_id))
    dismissed_id = repository.insert(_draft(user_id))
    repository.insert(_draft(user_id, expires_at=utc_now() - timedelta(minutes=1)))
    repository.insert(_draft(other_id))

    repository.mark_read(read_id)
    repository.dismiss(dismissed_id)

    assert repository.unread_count(user_id) == 2
    assert repository.unread_count(other_id) == 1


def test_mark_read_is_idempotent(repository, create_user):
    user_id = create_user()
    notification_id = repository.insert(_draft(user_id))

    first = repository.mark_read(notification_id)
    second = repository.mark_read(notification_id)

    assert first.is_read is True
    assert second.is_read is True
    assert second.read_at == first.read_at
    assert repository.unread_count(user_id) == 0


def test_dismiss_removes_row_from_listing_and_unread_count(repository, create_user):
    user_id = create_user()
    kept_id = repository.insert(_draft(user_id))
    dismissed_id = repository.insert(_draft(user_id))
    assert repository.unread_count(user_id) == 2

    dismissed = repository.dismiss(dismissed_id)
    rows, total = repository.list(user_id)

    assert dismissed.is_dismissed is True
    assert dismissed.dismissed_at is not None
    assert [row.id for row in rows] == [kept_id]
    assert total == 1
    assert repository.unread_count(user_id) == 1


def test_list_falls_back_to_created_at_for_unknown_sort_column(repository, session, create_user):
    user_id = create_user()
    oldest = repository.insert(_draft(user_id, title="oldest"))
    middle = repository.insert(_draft(user_id, title="middle"))
    newest = repository.insert(_draft(user_id, title="newest"))
    _set_created_at(session, oldest, datetime(2024, 1, 1, 8, 0))
    _set_created_at(session, middle, datetime(2024, 1, 1, 9, 0))
    _set_created_at(session, newest, datetime(2024, 1, 1, 10, 0))

    rows, _ = repository.list(user_id, sort_by="title; DROP TABLE notifications")
    ascending, _ = repository.list(user_id, sort_by="unknown", sort_order="ASC")

    assert [row.id for row in rows] == [newest, middle, oldest]
    assert [row.id for row in ascending] == [oldest, middle, newest]


def test_list_sorts_priority_by_rank(repository, create_user):
    user_id = create_user()
    high = repository.insert(_draft(user_id, priority=NotificationPriority.HIGH))
    low = repository.insert(_draft(user_id, priority=NotificationPriority.LOW))
    normal = repository.insert(_draft(user_id, priority=NotificationPriority.NORMAL))

    rows, _ = repository.list(user_id, sort_by="priority", sort_order="asc")

    assert [row.id for row in rows] == [low, normal, high]


def test_list_applies_filters_and_pagination(repository, create_user):
    user_id = create_user()
    for _ in range(3):
        repository.insert(_draft(user_id, category=NotificationCategory.CHAT))
    incident_id = repository.insert(
        _draft(user_id, category=NotificationCategory.INCIDENT, type=NotificationType.WARNING)
    )
    read_chat = repository.insert(_draft(user_id, category=NotificationCategory.CHAT))
    repository.mark_read(read_chat)

    chats, chat_total = repository.list(
        user_id, NotificationFilters(category=NotificationCategory.CHAT, is_read=False), limit=2
    )
    second_page, _ = repository.list(
        user_id, NotificationFilters(category=NotificationCategory.CHAT, is_read=False), page=2, limit=2
    )
    warnings, warning_total = repository.list(
        user_id, NotificationFilters(type=NotificationType.WARNING)
    )

    assert chat_total == 3
    assert len(chats) == 2
    assert len(second_page) == 1
    assert warning_total == 1
    assert warnings[0].id == incident_id


def test_data_document_is_stored_untouched(repository, create_user):
    user_id = create_user()
    document = {"incident": {"lat": 1.5, "tags": ["a", "b"]}, "count": 3, "flag": None}

    notification = repository.get(repository.insert(_draft(user_id, data=document)))

    assert notification.data == document


def test_unread_count_by_category_reports_every_category(repository, create_user):
    user_id = create_user()
    repository.insert(_draft(user_id, category=NotificationCategory.CHAT))
    repository.insert(_draft(user_id, category=NotificationCategory.CHAT))
    repository.insert(_draft(user_id, category=NotificationCategory.ALERT))

    counts = repository.unread_count_by_category(user_id)

    assert set(counts) == {category.value for category in NotificationCategory} | {"total"}
    assert counts["chat"] == 2
    assert counts["alert"] == 1
    assert counts["reminder"] == 0
    assert counts["total"] == 3


def test_update_push_status_overwrites_previous_attempt(repository, create_user):
    user_id = create_user()
    notification_id = repository.insert(_draft(user_id))

    repository.update_push_status(notification_id, False, "quota-exceeded")
    failed = repository.get(notification_id)
    repository.update_push_status(notification_id, True)
    sent = repository.get(notification_id)

    assert failed.is_push_sent is False
    assert failed.push_error == "quota-exceeded"
    assert sent.is_push_sent is True
    assert sent.push_error is None
    assert sent.push_sent_at is not None


def test_select_pending_push_orders_by_priority_then_age(repository, session, create_user):
    with_token = create_user(device_token="token-a")
    without_token = create_user(device_token=None)
    blank_token = create_user(device_token="")

    low = repository.insert(_draft(with_token, priority=NotificationPriority.LOW))
    normal = repository.insert(_draft(with_token, priority=NotificationPriority.NORMAL))
    high = repository.insert(_draft(with_token, priority=NotificationPriority.HIGH))
    older_normal = repository.insert(_draft(with_token, priority=NotificationPriority.NORMAL))
    created = datetime(2024, 5, 1, 12, 0)
    for notification_id in (low, normal, high):
        _set_created_at(session, notification_id, created)
    _set_created_at(session, older_normal, created - timedelta(hours=1))

    sent = repository.insert(_draft(with_token))
    repository.update_push_status(sent, True)
    repository.dismiss(repository.insert(_draft(with_token)))
    repository.insert(_draft(with_token, scheduled_at=utc_now() + timedelta(hours=1)))
    repository.insert(_draft(with_token, expires_at=utc_now() - timedelta(hours=1)))
    repository.insert(_draft(without_token))
    repository.insert(_draft(blank_token))
    due = repository.insert(_draft(with_token, priority=NotificationPriority.LOW, scheduled_at=utc_now() - timedelta(minutes=5)))

    pending = repository.select_pending_push(limit=10)

    assert [row.notification.id for row in pending][:4] == [high, older_normal, normal, low]
    assert {row.notification.id for row in pending} == {high, older_normal, normal, low, due}
    assert all(row.device_token == "token-a" for row in pending)


def test_select_pending_push_respects_limit(repository, create_user):
    user_id = create_user(device_token="token-a")
    for _ in range(5):
        repository.insert(_draft(user_id))

    assert len(repository.select_pending_push(limit=3)) == 3


def test_insert_many_uses_supplied_ids(repository, create_user):
    first, second = create_user(), create_user()
    drafts = [_draft(first), _draft(second)]

    count = repository.insert_many(drafts, ["id-1", "id-2"])

    assert count == 2
    assert repository.get("id-1").recipient_id == first
    assert repository.get("id-2").recipient_id == second
    with pytest.raises(ValueError):
        repository.insert_many(drafts, ["only-one"])


def test_update_push_status_many_marks_each_row(repository, create_user):
    user_id = create_user()
    ids = [repository.insert(_draft(user_id)) for _ in range(3)]

    updated = repository.update_push_status_many(ids[:2], False, "PUSH_FAILED")

    assert updated == 2
    assert [repository.get(i).push_error for i in ids] == ["PUSH_FAILED", "PUSH_FAILED", None]
    assert repository.update_push_status_many([], True) == 0


def test_retention_deletes_expired_and_old_read_rows(repository, session, create_user):
    user_id = create_user()
    expired = repository.insert(_draft(user_id, expires_at=utc_now() - timedelta(days=1)))
    old_read = repository.insert(_draft(user_id))
    recent_read = repository.insert(_draft(user_id))
    old_unread = repository.insert(_draft(user_id))
    repository.mark_read(old_read)
    repository.mark_read(recent_read)
    long_ago = utc_now_naive() - timedelta(days=45)
    _set_created_at(session, old_read, long_ago)
    _set_created_at(session, old_unread, long_ago)

    assert repository.delete_expired() == 1
    assert repository.delete_old_read(30) == 1
    assert repository.get(expired) is None
    assert repository.get(old_read) is None
    assert repository.get(recent_read) is not None
    assert repository.get(old_unread) is not None


def test_delete_removes_row(repository, create_user):
    user_id = create_user()
    notification_id = repository.insert(_draft(user_id))

    assert repository.delete(notification_id) is True
    assert repository.delete(notification_id) is False
    assert repository.get(notification_id) is None
