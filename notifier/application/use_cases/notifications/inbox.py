"""Read-side use cases over the notifications owned by a user."""

from __future__ import annotations

from sqlalchemy.orm import Session

from notifier.domain.entities import Notification, NotificationFilters, NotificationPage
from notifier.domain.errors import NotFoundError
from notifier.infrastructure.repositories import NotificationRepository

MAX_PAGE_SIZE = 100


def list_notifications(
    session: Session,
    user_id: str,
    filters: NotificationFilters | None = None,
    *,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> NotificationPage:
    """Return one page of visible notifications for ``user_id``."""

    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    items, total = NotificationRepository(session).list(
        user_id, filters, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
    )
    return NotificationPage(items=items, total=total, page=page, limit=limit)


def get_notification(session: Session, notification_id: str, user_id: str) -> Notification:
    notification = NotificationRepository(session).get_by_id_for_owner(notification_id, user_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    return notification


def mark_notification_read(session: Session, notification_id: str, user_id: str) -> Notification:
    """Mark the notification as read; repeating the call is harmless."""

    notification = get_notification(session, notification_id, user_id)
    if notification.is_read:
        return notification
    updated = NotificationRepository(session).mark_read(notification_id)
    if updated is None:
        raise NotFoundError("Notification not found")
    return updated


def mark_all_notifications_read(session: Session, user_id: str) -> int:
    return NotificationRepository(session).mark_all_read(user_id)


def dismiss_notification(session: Session, notification_id: str, user_id: str) -> Notification:
    """Hide the notification from listings and unread counts for good."""

    get_notification(session, notification_id, user_id)
    dismissed = NotificationRepository(session).dismiss(notification_id)
    if dismissed is None:
        raise NotFoundError("Notification not found")
    return dismissed


def get_unread_count(session: Session, user_id: str) -> int:
    return NotificationRepository(session).unread_count(user_id)


def get_unread_count_by_category(session: Session, user_id: str) -> dict[str, int]:
    return NotificationRepository(session).unread_count_by_category(user_id)


__all__ = [
    "MAX_PAGE_SIZE",
    "dismiss_notification",
    "get_notification",
    "get_unread_count",
    "get_unread_count_by_category",
    "list_notifications",
    "mark_all_notifications_read",
    "mark_notification_read",
]
