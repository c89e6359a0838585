"""Create notifications and fan them out to the realtime and push channels."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from notifier.application.dispatcher import BackgroundDispatcher
from notifier.domain.entities import (
    BatchPushResult,
    DeviceTokenPair,
    Notification,
    NotificationDraft,
    NotificationPriority,
    PushMessage,
    PushResult,
)
from notifier.domain.errors import StorageError, ValidationError
from notifier.domain.ports import AccountStore, NotificationStore, PushGateway, RealtimeBus
from notifier.infrastructure.repositories import NotificationRepository, UserRepository
from notifier.utils import iso_or_none, to_storage_datetime, utc_now_naive

from .token_hygiene import TokenHygiene

logger = logging.getLogger(__name__)

NEW_EVENT = "notification:new"
URGENT_EVENT = "notification:urgent"
COUNT_EVENT = "notifications:count"
COUNT_DETAILED_EVENT = "notifications:count:detailed"
BROADCAST_EVENT = "notification:broadcast"
SYSTEM_EVENT = "notification:system"

INVALID_TOKEN_ERROR = "INVALID_TOKEN"
BATCH_FAILED_ERROR = "PUSH_FAILED"


def format_notification(notification: Notification) -> dict[str, Any]:
    """Return the client representation of ``notification``."""

    return {
        "id": notification.id,
        "user_id": notification.recipient_id,
        "title": notification.title,
        "body": notification.body,
        "summary": notification.summary,
        "type": notification.type.value,
        "category": notification.category.value,
        "entity_type": notification.entity_type,
        "entity_id": notification.entity_id,
        "action_url": notification.action_url,
        "action_type": notification.action_type,
        "image_url": notification.image_url,
        "icon": notification.icon,
        "priority": notification.priority.value,
        "sender_id": notification.sender_id,
        "data": notification.data,
        "is_read": notification.is_read,
        "read_at": iso_or_none(notification.read_at),
        "is_dismissed": notification.is_dismissed,
        "dismissed_at": iso_or_none(notification.dismissed_at),
        "created_at": iso_or_none(notification.created_at),
        "updated_at": iso_or_none(notification.updated_at),
    }


def is_push_due(scheduled_at: datetime | None) -> bool:
    """Return ``False`` while a scheduled notification is still in the future."""

    if scheduled_at is None:
        return True
    return to_storage_datetime(scheduled_at) <= utc_now_naive()


def validate_draft(draft: NotificationDraft, *, require_recipient: bool = True) -> None:
    """Raise :class:`ValidationError` when a required field is blank."""

    required = ["title", "body"]
    if require_recipient:
        required.insert(0, "recipient_id")
    for field_name in required:
        value = getattr(draft, field_name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(field_name)


class DeliveryCoordinator:
    """Persist notifications inline and deliver them in the background.

    The row is committed before :meth:`create` returns, so an immediate
    listing or unread count sees it. Realtime and push delivery run on the
    dispatcher; their failures are logged and never reach the caller.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        push_gateway: PushGateway,
        realtime_bus: RealtimeBus,
        dispatcher: BackgroundDispatcher,
        *,
        token_hygiene: TokenHygiene | None = None,
        store_factory: Callable[[Session], NotificationStore] = NotificationRepository,
        account_factory: Callable[[Session], AccountStore] = UserRepository,
    ) -> None:
        self._session_factory = session_factory
        self._push_gateway = push_gateway
        self._realtime_bus = realtime_bus
        self._dispatcher = dispatcher
        self._token_hygiene = token_hygiene or TokenHygiene(
            session_factory, store_factory=account_factory
        )
        self._store_factory = store_factory
        self._account_factory = account_factory
        self.last_dispatch: Future | None = None

    def create(
        self,
        draft: NotificationDraft,
        *,
        emit_realtime: bool = True,
        send_push: bool = True,
        device_token: str | None = None,
    ) -> dict[str, Any]:
        """Persist ``draft`` and schedule its delivery.

        Returns the formatted notification whatever happens to the realtime
        and push channels afterwards.
        """

        validate_draft(draft)

        session = self._session_factory()
        try:
            store = self._store_factory(session)
            notification_id = store.insert(draft)
            notification = store.get(notification_id)
        finally:
            session.close()
        if notification is None:
            raise StorageError(f"Notification {notification_id} vanished after insert")

        formatted = format_notification(notification)
        if emit_realtime or send_push:
            self.last_dispatch = self._dispatcher.submit(
                self._deliver_one,
                notification,
                formatted,
                emit_realtime=emit_realtime,
                send_push=send_push,
                device_token=device_token,
                label=f"deliver:{notification.id}",
            )
        return formatted

    def create_for_many(
        self,
        recipient_ids: Iterable[str],
        draft: NotificationDraft,
        *,
        emit_realtime: bool = True,
        send_push: bool = True,
    ) -> int:
        """Persist one copy of ``draft`` per recipient and return the row count."""

        recipients = list(recipient_ids or [])
        if not recipients:
            return 0
        validate_draft(draft, require_recipient=False)
        if any(not recipient for recipient in recipients):
            raise ValidationError("recipient_id", "recipient_ids must not contain blanks")

        ids = [str(uuid.uuid4()) for _ in recipients]
        drafts = [draft.for_recipient(recipient) for recipient in recipients]
        session = self._session_factory()
        try:
            count = self._store_factory(session).insert_many(drafts, ids)
        finally:
            session.close()

        if count and (emit_realtime or send_push):
            self.last_dispatch = self._dispatcher.submit(
                self._deliver_many,
                list(zip(recipients, ids)),
                draft,
                emit_realtime=emit_realtime,
                send_push=send_push,
                label=f"deliver-many:{count}",
            )
        return count

    def _deliver_one(
        self,
        notification: Notification,
        formatted: dict[str, Any],
        *,
        emit_realtime: bool,
        send_push: bool,
        device_token: str | None,
    ) -> None:
        if emit_realtime:
            self._publish_new(
                notification.recipient_id, formatted, notification.priority
            )
        if send_push:
            self._push_one(notification, device_token)

    def _publish_new(
        self, user_id: str, formatted: dict[str, Any], priority: NotificationPriority
    ) -> None:
        try:
            self._realtime_bus.publish(user_id, NEW_EVENT, {"notification": formatted})
            if priority == NotificationPriority.HIGH:
                self._realtime_bus.publish(user_id, URGENT_EVENT, {"notification": formatted})
        except Exception:
            logger.exception("Failed to emit realtime notification for user %s", user_id)

    def _push_one(self, notification: Notification, device_token: str | None) -> None:
        if not self._push_gateway.is_configured:
            logger.debug("Push gateway not configured; notification %s not pushed", notification.id)
            return
        if not is_push_due(notification.scheduled_at):
            logger.debug(
                "Notification %s scheduled for %s; left for the pending sweep",
                notification.id,
                notification.scheduled_at,
            )
            return

        token = device_token or self._lookup_token(notification.recipient_id)
        if not token:
            logger.debug(
                "No device token found for user %s, skipping push", notification.recipient_id
            )
            return

        message = PushMessage.from_notification(notification)
        try:
            result = self._push_gateway.send_single(token, message)
        except Exception as exc:
            logger.exception("Push gateway raised for notification %s", notification.id)
            result = PushResult(success=False, error=str(exc) or type(exc).__name__)

        try:
            self._record_push(notification.id, result)
        finally:
            if result.is_invalid_token:
                logger.warning(
                    "Invalid device token detected for user %s (%s...)",
                    notification.recipient_id,
                    token[:20],
                )
                self._token_hygiene.clear(notification.recipient_id, token)

    def _deliver_many(
        self,
        rows: list[tuple[str, str]],
        draft: NotificationDraft,
        *,
        emit_realtime: bool,
        send_push: bool,
    ) -> None:
        if emit_realtime:
            for recipient_id, notification_id in rows:
                summary = {
                    "id": notification_id,
                    "user_id": recipient_id,
                    "title": draft.title,
                    "body": draft.body,
                    "type": draft.type.value,
                    "category": draft.category.value,
                    "priority": draft.priority.value,
                    "entity_type": draft.entity_type,
                    "entity_id": draft.entity_id,
                    "action_url": draft.action_url,
                }
                self._publish_new(recipient_id, summary, draft.priority)
            logger.debug("Realtime notifications emitted to %s users", len(rows))
        if send_push:
            self._push_many(rows, draft)

    def _push_many(self, rows: list[tuple[str, str]], draft: NotificationDraft) -> None:
        if not self._push_gateway.is_configured:
            logger.debug("Push gateway not configured; fan-out not pushed")
            return
        if not is_push_due(draft.scheduled_at):
            logger.debug(
                "Fan-out of %s rows scheduled for %s; left for the pending sweep",
                len(rows),
                draft.scheduled_at,
            )
            return

        ids_by_recipient: dict[str, list[str]] = defaultdict(list)
        for recipient_id, notification_id in rows:
            ids_by_recipient[recipient_id].append(notification_id)

        session = self._session_factory()
        try:
            pairs = self._account_factory(session).get_device_tokens(list(ids_by_recipient))
        finally:
            session.close()
        if not pairs:
            logger.debug("No device tokens found for %s users, skipping push", len(ids_by_recipient))
            return

        tokens = [pair.token for pair in pairs]
        try:
            result = self._push_gateway.send_batch(tokens, PushMessage.from_draft(draft))
        except Exception:
            logger.exception("Push gateway raised during fan-out to %s devices", len(tokens))
            result = BatchPushResult(failure_count=len(tokens), failed_tokens=list(tokens))

        logger.info(
            "Bulk push notifications sent: %s users, %s tokens, %s sent, %s failed",
            len(ids_by_recipient),
            len(tokens),
            result.success_count,
            result.failure_count,
        )
        invalid = set(result.invalid_tokens)
        try:
            self._record_batch(pairs, ids_by_recipient, result)
        finally:
            if invalid:
                self._token_hygiene.clear_many([pair for pair in pairs if pair.token in invalid])

    def _lookup_token(self, user_id: str) -> str | None:
        session = self._session_factory()
        try:
            return self._account_factory(session).get_device_token(user_id)
        finally:
            session.close()

    def _record_push(self, notification_id: str, result: PushResult) -> None:
        session = self._session_factory()
        try:
            self._store_factory(session).update_push_status(
                notification_id, result.success, None if result.success else result.error
            )
        finally:
            session.close()

    def _record_batch(
        self,
        pairs: list[DeviceTokenPair],
        ids_by_recipient: dict[str, list[str]],
        result: BatchPushResult,
    ) -> None:
        invalid = set(result.invalid_tokens)
        failed = set(result.failed_tokens)
        delivered_ids: list[str] = []
        invalid_ids: list[str] = []
        failed_ids: list[str] = []
        for pair in pairs:
            notification_ids = ids_by_recipient.get(pair.user_id, [])
            if pair.token in invalid:
                invalid_ids.extend(notification_ids)
            elif pair.token in failed:
                failed_ids.extend(notification_ids)
            else:
                delivered_ids.extend(notification_ids)

        session = self._session_factory()
        try:
            store = self._store_factory(session)
            store.update_push_status_many(delivered_ids, True)
            store.update_push_status_many(invalid_ids, False, INVALID_TOKEN_ERROR)
            store.update_push_status_many(failed_ids, False, BATCH_FAILED_ERROR)
        finally:
            session.close()

    def publish_unread_count(self, user_id: str) -> None:
        try:
            session = self._session_factory()
            try:
                count = self._store_factory(session).unread_count(user_id)
            finally:
                session.close()
            self._realtime_bus.publish(user_id, COUNT_EVENT, {"count": count})
        except Exception:
            logger.exception("Failed to emit notification count update for user %s", user_id)

    def publish_unread_count_detailed(self, user_id: str) -> None:
        try:
            session = self._session_factory()
            try:
                counts = self._store_factory(session).unread_count_by_category(user_id)
            finally:
                session.close()
            self._realtime_bus.publish(user_id, COUNT_DETAILED_EVENT, counts)
        except Exception:
            logger.exception(
                "Failed to emit detailed notification count update for user %s", user_id
            )

    def broadcast_to_role(self, role: str, payload: dict[str, Any]) -> None:
        self._realtime_bus.publish_to_role(role, BROADCAST_EVENT, {"notification": payload})

    def broadcast_system(self, payload: dict[str, Any]) -> None:
        self._realtime_bus.publish_to_all(SYSTEM_EVENT, {"notification": payload})


__all__ = [
    "BROADCAST_EVENT",
    "COUNT_DETAILED_EVENT",
    "COUNT_EVENT",
    "DeliveryCoordinator",
    "NEW_EVENT",
    "SYSTEM_EVENT",
    "URGENT_EVENT",
    "format_notification",
    "is_push_due",
    "validate_draft",
]
