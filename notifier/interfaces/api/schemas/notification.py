"""Pydantic models describing notification payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from notifier.domain.entities import (
    NotificationCategory,
    NotificationDraft,
    NotificationPriority,
    NotificationType,
    PushTemplate,
)


class NotificationRead(BaseModel):
    """Representation of a notification delivered to the client."""

    id: str
    user_id: str
    title: str
    body: str
    summary: str | None = None
    type: NotificationType
    category: NotificationCategory
    entity_type: str | None = None
    entity_id: str | None = None
    action_url: str | None = None
    action_type: str | None = None
    image_url: str | None = None
    icon: str | None = None
    priority: NotificationPriority
    sender_id: str | None = None
    data: Any = None
    is_read: bool = False
    read_at: datetime | None = None
    is_dismissed: bool = False
    dismissed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class NotificationListResponse(BaseModel):
    items: list[NotificationRead]
    total: int
    page: int
    limit: int
    pages: int


class MarkAllReadResponse(BaseModel):
    count: int


class DeviceTokenUpdate(BaseModel):
    """Payload used by a device to register (or remove) its push token."""

    device_token: str | None = Field(default=None, max_length=500)


class PushTestRequest(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    body: str | None = Field(default=None, max_length=1000)


class PushResultRead(BaseModel):
    success: bool
    message_id: str | None = None
    error: str | None = None
    is_invalid_token: bool = False


class NotificationSendRequest(BaseModel):
    """Administrative request creating notifications for one or more users."""

    user_ids: list[str] = Field(..., min_length=1, max_length=1000)
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1, max_length=5000)
    summary: str | None = Field(default=None, max_length=500)
    type: NotificationType = NotificationType.INFO
    category: NotificationCategory = NotificationCategory.SYSTEM
    entity_type: str | None = Field(default=None, max_length=100)
    entity_id: str | None = None
    action_url: str | None = Field(default=None, max_length=500)
    action_type: str | None = Field(default=None, max_length=50)
    image_url: str | None = Field(default=None, max_length=500)
    icon: str | None = Field(default=None, max_length=100)
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: Any = None
    scheduled_at: datetime | None = None
    expires_at: datetime | None = None
    emit_realtime: bool = True
    send_push: bool = True

    def to_draft(self, *, sender_id: str | None = None) -> NotificationDraft:
        return NotificationDraft(
            recipient_id=self.user_ids[0] if len(self.user_ids) == 1 else None,
            title=self.title,
            body=self.body,
            summary=self.summary,
            type=self.type,
            category=self.category,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            action_url=self.action_url,
            action_type=self.action_type,
            image_url=self.image_url,
            icon=self.icon,
            priority=self.priority,
            sender_id=sender_id,
            data=self.data,
            scheduled_at=self.scheduled_at,
            expires_at=self.expires_at,
        )


class NotificationSendResponse(BaseModel):
    count: int
    notification: dict[str, Any] | None = None


class SendPushRequest(BaseModel):
    """Push-only message addressed to explicit users or to a whole role."""

    user_ids: list[str] | None = Field(default=None, min_length=1, max_length=1000)
    role: str | None = None
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1, max_length=2000)
    type: PushTemplate = PushTemplate.SYSTEM
    target_id: str | None = None
    data: dict[str, Any] | None = None
    priority: Literal["normal", "high"] = "normal"
    image_url: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _require_audience(self) -> "SendPushRequest":
        if not self.user_ids and not self.role:
            raise ValueError("Either user_ids or role must be provided")
        return self


class ManualPushResultRead(BaseModel):
    success: bool
    sent_count: int
    failed_count: int
    invalid_token_count: int
    total_devices: int
    error: str | None = None


class SweepRequest(BaseModel):
    limit: int | None = Field(default=None, ge=1, le=500)


class SweepResultRead(BaseModel):
    processed: int
    success: int
    failed: int
    skipped: bool = False


class PushStatusRead(BaseModel):
    initialized: bool
    configured: bool
    project_id: str


class RetentionRequest(BaseModel):
    read_older_than_days: int | None = Field(default=None, ge=1)


class RetentionResultRead(BaseModel):
    expired: int
    old_read: int


__all__ = [
    "DeviceTokenUpdate",
    "ManualPushResultRead",
    "MarkAllReadResponse",
    "NotificationListResponse",
    "NotificationRead",
    "NotificationSendRequest",
    "NotificationSendResponse",
    "PushResultRead",
    "PushStatusRead",
    "RetentionRequest",
    "RetentionResultRead",
    "SendPushRequest",
    "SweepRequest",
    "SweepResultRead",
    "PushTestRequest",
]
