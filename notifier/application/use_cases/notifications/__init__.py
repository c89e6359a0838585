"""Notification use cases: delivery, inbox reads, sweeps and retention."""

from .delivery import DeliveryCoordinator, format_notification, validate_draft
from .inbox import (
    dismiss_notification,
    get_notification,
    get_unread_count,
    get_unread_count_by_category,
    list_notifications,
    mark_all_notifications_read,
    mark_notification_read,
)
from .maintenance import RetentionResult, purge_notifications
from .manual_push import (
    ManualPushResult,
    send_push_to_role,
    send_push_to_users,
    send_test_push,
)
from .producers import (
    send_alert_notification,
    send_announcement_notification,
    send_approval_notification,
    send_chat_notification,
    send_incident_notification,
    send_system_notification,
)
from .sweeper import PendingSweeper, SweepResult
from .token_hygiene import TokenHygiene

__all__ = [
    "DeliveryCoordinator",
    "ManualPushResult",
    "PendingSweeper",
    "RetentionResult",
    "SweepResult",
    "TokenHygiene",
    "dismiss_notification",
    "format_notification",
    "get_notification",
    "get_unread_count",
    "get_unread_count_by_category",
    "list_notifications",
    "mark_all_notifications_read",
    "mark_notification_read",
    "purge_notifications",
    "send_alert_notification",
    "send_announcement_notification",
    "send_approval_notification",
    "send_chat_notification",
    "send_incident_notification",
    "send_push_to_role",
    "send_push_to_users",
    "send_system_notification",
    "send_test_push",
    "validate_draft",
]
