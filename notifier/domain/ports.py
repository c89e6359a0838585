"""Interfaces the notification core depends on.

Concrete implementations live in :mod:`notifier.infrastructure`; tests provide
in-memory fakes honouring the same contracts.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Protocol

from .entities import (
    BatchPushResult,
    DeviceTokenPair,
    Notification,
    NotificationDraft,
    NotificationFilters,
    PendingPush,
    PushMessage,
    PushResult,
)


class NotificationStore(Protocol):
    def insert(self, draft: NotificationDraft) -> str: ...

    def insert_many(
        self, drafts: Sequence[NotificationDraft], ids: Sequence[str] | None = None
    ) -> int: ...

    def get(self, notification_id: str) -> Notification | None: ...

    def get_by_id_for_owner(
        self, notification_id: str, user_id: str
    ) -> Notification | None: ...

    def list(
        self,
        user_id: str,
        filters: NotificationFilters | None = None,
        *,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> tuple[list[Notification], int]: ...

    def mark_read(self, notification_id: str) -> Notification | None: ...

    def mark_all_read(self, user_id: str) -> int: ...

    def dismiss(self, notification_id: str) -> Notification | None: ...

    def delete(self, notification_id: str) -> bool: ...

    def unread_count(self, user_id: str) -> int: ...

    def unread_count_by_category(self, user_id: str) -> dict[str, int]: ...

    def update_push_status(
        self, notification_id: str, success: bool, error: str | None = None
    ) -> None: ...

    def update_push_status_many(
        self, notification_ids: Sequence[str], success: bool, error: str | None = None
    ) -> int: ...

    def select_pending_push(self, limit: int = 100) -> list[PendingPush]: ...

    def delete_expired(self) -> int: ...

    def delete_old_read(self, days: int = 30) -> int: ...


class AccountStore(Protocol):
    def get_device_token(self, user_id: str) -> str | None: ...

    def get_device_tokens(self, user_ids: Iterable[str]) -> list[DeviceTokenPair]: ...

    def list_device_tokens_by_role(self, role: str) -> list[DeviceTokenPair]: ...

    def clear_device_token_if_matches(self, user_id: str, token: str) -> bool: ...

    def clear_device_tokens_if_match(self, pairs: Sequence[DeviceTokenPair]) -> int: ...


class RealtimeBus(Protocol):
    def publish(self, user_id: str, event: str, payload: Any) -> None: ...

    def publish_to_role(self, role: str, event: str, payload: Any) -> None: ...

    def publish_to_all(self, event: str, payload: Any) -> None: ...


class PushGateway(Protocol):
    @property
    def is_configured(self) -> bool: ...

    def send_single(self, token: str, message: PushMessage) -> PushResult: ...

    def send_batch(
        self, tokens: Sequence[str], message: PushMessage
    ) -> BatchPushResult: ...


__all__ = ["AccountStore", "NotificationStore", "PushGateway", "RealtimeBus"]
