"""Shortcuts used by the other domain modules to raise notifications."""

from __future__ import annotations

from typing import Any

from notifier.domain.entities import (
    NotificationCategory,
    NotificationDraft,
    NotificationPriority,
    NotificationType,
)

from .delivery import DeliveryCoordinator


def send_incident_notification(
    coordinator: DeliveryCoordinator,
    *,
    user_id: str,
    title: str,
    body: str,
    incident_id: str,
    action_type: str = "view",
    priority: NotificationPriority = NotificationPriority.NORMAL,
    sender_id: str | None = None,
) -> dict[str, Any]:
    return coordinator.create(
        NotificationDraft(
            recipient_id=user_id,
            title=title,
            body=body,
            type=NotificationType.INFO,
            category=NotificationCategory.INCIDENT,
            entity_type="incident",
            entity_id=incident_id,
            action_url=f"/incidents/{incident_id}",
            action_type=action_type,
            priority=priority,
            sender_id=sender_id,
        )
    )


def send_chat_notification(
    coordinator: DeliveryCoordinator,
    *,
    user_id: str,
    title: str,
    body: str,
    conversation_id: str,
    sender_id: str | None,
    image_url: str | None = None,
) -> dict[str, Any]:
    return coordinator.create(
        NotificationDraft(
            recipient_id=user_id,
            title=title,
            body=body,
            type=NotificationType.INFO,
            category=NotificationCategory.CHAT,
            entity_type="conversation",
            entity_id=conversation_id,
            action_url=f"/chat/{conversation_id}",
            action_type="reply",
            priority=NotificationPriority.NORMAL,
            sender_id=sender_id,
            image_url=image_url,
        )
    )


def send_approval_notification(
    coordinator: DeliveryCoordinator,
    *,
    user_id: str,
    title: str,
    body: str,
    target_user_id: str | None = None,
    action_type: str = "approve",
    sender_id: str | None = None,
) -> dict[str, Any]:
    """Ask an approver to act on a pending account, always at high priority."""

    return coordinator.create(
        NotificationDraft(
            recipient_id=user_id,
            title=title,
            body=body,
            type=NotificationType.ACTION if action_type == "approve" else NotificationType.INFO,
            category=NotificationCategory.APPROVAL,
            entity_type="user",
            entity_id=target_user_id,
            action_url=f"/users/{target_user_id}" if target_user_id else "/users/pending",
            action_type=action_type,
            priority=NotificationPriority.HIGH,
            sender_id=sender_id,
        )
    )


def send_announcement_notification(
    coordinator: DeliveryCoordinator,
    *,
    user_ids: list[str],
    title: str,
    body: str,
    announcement_id: str,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    sender_id: str | None = None,
) -> int:
    """Announcements reach many readers at once, so they go through fan-out."""

    return coordinator.create_for_many(
        user_ids,
        NotificationDraft(
            recipient_id=None,
            title=title,
            body=body,
            type=NotificationType.INFO,
            category=NotificationCategory.ANNOUNCEMENT,
            entity_type="announcement",
            entity_id=announcement_id,
            action_url=f"/announcements/{announcement_id}",
            action_type="view",
            priority=priority,
            sender_id=sender_id,
        ),
    )


def send_alert_notification(
    coordinator: DeliveryCoordinator,
    *,
    user_id: str,
    title: str,
    body: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    action_url: str | None = None,
    sender_id: str | None = None,
) -> dict[str, Any]:
    return coordinator.create(
        NotificationDraft(
            recipient_id=user_id,
            title=title,
            body=body,
            type=NotificationType.WARNING,
            category=NotificationCategory.ALERT,
            entity_type=entity_type,
            entity_id=entity_id,
            action_url=action_url,
            action_type="view",
            priority=NotificationPriority.HIGH,
            sender_id=sender_id,
        )
    )


def send_system_notification(
    coordinator: DeliveryCoordinator,
    *,
    user_id: str,
    title: str,
    body: str,
    type: NotificationType = NotificationType.INFO,
    priority: NotificationPriority = NotificationPriority.NORMAL,
) -> dict[str, Any]:
    return coordinator.create(
        NotificationDraft(
            recipient_id=user_id,
            title=title,
            body=body,
            type=type,
            category=NotificationCategory.SYSTEM,
            priority=priority,
        )
    )


__all__ = [
    "send_alert_notification",
    "send_announcement_notification",
    "send_approval_notification",
    "send_chat_notification",
    "send_incident_notification",
    "send_system_notification",
]
