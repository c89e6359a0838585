"""Domain entity representing a user notification."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class NotificationType(str, Enum):
    """Visual type of a notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    ACTION = "action"


class NotificationCategory(str, Enum):
    """Domain area that produced the notification."""

    SYSTEM = "system"
    INCIDENT = "incident"
    CHAT = "chat"
    ANNOUNCEMENT = "announcement"
    APPROVAL = "approval"
    ALERT = "alert"
    REMINDER = "reminder"


class NotificationPriority(str, Enum):
    """Delivery urgency, also used to order the pending push sweep."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANKS[self]


_PRIORITY_RANKS = {
    NotificationPriority.LOW: 1,
    NotificationPriority.NORMAL: 2,
    NotificationPriority.HIGH: 3,
}


@dataclass
class Notification:
    """Persisted message owned by a single recipient."""

    id: str
    recipient_id: str
    title: str
    body: str
    summary: str | None = None
    type: NotificationType = NotificationType.INFO
    category: NotificationCategory = NotificationCategory.SYSTEM
    entity_type: str | None = None
    entity_id: str | None = None
    action_url: str | None = None
    action_type: str | None = None
    image_url: str | None = None
    icon: str | None = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    sender_id: str | None = None
    data: Any = None
    is_read: bool = False
    read_at: datetime | None = None
    is_dismissed: bool = False
    dismissed_at: datetime | None = None
    is_push_sent: bool = False
    push_sent_at: datetime | None = None
    push_error: str | None = None
    scheduled_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class NotificationDraft:
    """Values supplied by a producer before the notification is persisted.

    ``data`` is an opaque JSON document and is stored exactly as received.
    """

    recipient_id: str | None
    title: str | None
    body: str | None
    summary: str | None = None
    type: NotificationType = NotificationType.INFO
    category: NotificationCategory = NotificationCategory.SYSTEM
    entity_type: str | None = None
    entity_id: str | None = None
    action_url: str | None = None
    action_type: str | None = None
    image_url: str | None = None
    icon: str | None = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    sender_id: str | None = None
    data: Any = None
    scheduled_at: datetime | None = None
    expires_at: datetime | None = None

    def for_recipient(self, recipient_id: str) -> "NotificationDraft":
        """Return a copy of the draft addressed to ``recipient_id``."""

        values = {name: getattr(self, name) for name in self.__dataclass_fields__}
        values["recipient_id"] = recipient_id
        return NotificationDraft(**values)


@dataclass
class PendingPush:
    """Notification awaiting push delivery joined with the recipient token."""

    notification: Notification
    device_token: str


@dataclass
class NotificationFilters:
    """Optional listing filters applied on top of ownership and visibility."""

    category: NotificationCategory | None = None
    type: NotificationType | None = None
    is_read: bool | None = None


@dataclass
class NotificationPage:
    """A page of notifications together with the unpaginated total."""

    items: list[Notification] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10


__all__ = [
    "Notification",
    "NotificationCategory",
    "NotificationDraft",
    "NotificationFilters",
    "NotificationPage",
    "NotificationPriority",
    "NotificationType",
    "PendingPush",
]
