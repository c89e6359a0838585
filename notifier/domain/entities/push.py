"""Value objects exchanged with the push gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .notification import (
    Notification,
    NotificationCategory,
    NotificationDraft,
    NotificationPriority,
)


class PushTemplate(str, Enum):
    """Client-side handler selected by the ``type`` key of a push payload."""

    CHAT = "chat"
    INCIDENT = "incident"
    ANNOUNCEMENT = "announcement"
    SOS = "sos"
    APPROVAL = "approval"
    ALERT = "alert"
    SYSTEM = "system"


# The mobile client has no reminder screen; reminders open the generic system
# handler. Any category added later must be mapped here or import fails.
_CATEGORY_TEMPLATES: dict[NotificationCategory, PushTemplate] = {
    NotificationCategory.SYSTEM: PushTemplate.SYSTEM,
    NotificationCategory.INCIDENT: PushTemplate.INCIDENT,
    NotificationCategory.CHAT: PushTemplate.CHAT,
    NotificationCategory.ANNOUNCEMENT: PushTemplate.ANNOUNCEMENT,
    NotificationCategory.APPROVAL: PushTemplate.APPROVAL,
    NotificationCategory.ALERT: PushTemplate.ALERT,
    NotificationCategory.REMINDER: PushTemplate.SYSTEM,
}

_unmapped = set(NotificationCategory) - set(_CATEGORY_TEMPLATES)
if _unmapped:  # pragma: no cover - guards future enum additions
    raise RuntimeError(
        "Missing push template for categories: "
        + ", ".join(sorted(category.value for category in _unmapped))
    )


def push_template_for(category: NotificationCategory) -> PushTemplate:
    """Return the push template used for ``category``."""

    return _CATEGORY_TEMPLATES[NotificationCategory(category)]


@dataclass
class PushMessage:
    """Provider-neutral description of a push notification."""

    title: str
    body: str
    template: PushTemplate = PushTemplate.SYSTEM
    image_url: str | None = None
    target_id: str | None = None
    action: str = "open"
    priority: str = "normal"
    sound: str = "default"
    channel_id: str = "default"
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_notification(cls, notification: Notification) -> "PushMessage":
        """Build the push message announcing ``notification``.

        The first attempt and every retry of the same row produce the same
        data: the notification id plus its opaque data document.
        """

        message = cls._from_source(notification)
        message.data = {"notificationId": notification.id, **message.data}
        return message

    @classmethod
    def from_draft(cls, draft: NotificationDraft) -> "PushMessage":
        """Build the push message shared by every recipient of a fan-out."""

        return cls._from_source(draft)

    @classmethod
    def _from_source(cls, source: Notification | NotificationDraft) -> "PushMessage":
        message = cls(
            title=source.title or "",
            body=source.body or "",
            template=push_template_for(source.category),
            image_url=source.image_url,
            target_id=source.entity_id,
            action="open" if source.action_type == "view" else "navigate",
            priority="high" if source.priority == NotificationPriority.HIGH else "normal",
            data={"entityType": source.entity_type, "actionUrl": source.action_url},
        )
        if isinstance(source.data, dict):
            message.data.update(source.data)
        return message


@dataclass
class PushResult:
    """Outcome of a single-device send."""

    success: bool
    message_id: str | None = None
    error: str | None = None
    is_invalid_token: bool = False


@dataclass
class BatchPushResult:
    """Aggregated outcome of a chunked multicast send.

    ``failed_tokens`` lists every token that was not delivered and
    ``invalid_tokens`` the subset the provider reported as dead.
    """

    success_count: int = 0
    failure_count: int = 0
    invalid_tokens: list[str] = field(default_factory=list)
    failed_tokens: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.success_count > 0

    def merge(self, other: "BatchPushResult") -> None:
        self.success_count += other.success_count
        self.failure_count += other.failure_count
        self.invalid_tokens.extend(other.invalid_tokens)
        self.failed_tokens.extend(other.failed_tokens)


__all__ = [
    "BatchPushResult",
    "PushMessage",
    "PushResult",
    "PushTemplate",
    "push_template_for",
]
