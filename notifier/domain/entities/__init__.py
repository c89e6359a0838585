"""Domain entities exposed by the application."""

from .notification import (
    Notification,
    NotificationCategory,
    NotificationDraft,
    NotificationFilters,
    NotificationPage,
    NotificationPriority,
    NotificationType,
    PendingPush,
)
from .push import (
    BatchPushResult,
    PushMessage,
    PushResult,
    PushTemplate,
    push_template_for,
)
from .user import DeviceTokenPair, User

__all__ = [
    "BatchPushResult",
    "DeviceTokenPair",
    "Notification",
    "NotificationCategory",
    "NotificationDraft",
    "NotificationFilters",
    "NotificationPage",
    "NotificationPriority",
    "NotificationType",
    "PendingPush",
    "PushMessage",
    "PushResult",
    "PushTemplate",
    "User",
    "push_template_for",
]
