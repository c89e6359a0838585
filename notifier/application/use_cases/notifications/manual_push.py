"""Operator-triggered push sends that bypass the notification inbox."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy.orm import Session

from notifier.domain.entities import DeviceTokenPair, PushMessage, PushResult, PushTemplate
from notifier.domain.errors import NotFoundError, ValidationError
from notifier.domain.ports import PushGateway
from notifier.infrastructure.repositories import UserRepository
from notifier.utils import utc_now

from .token_hygiene import TokenHygiene

logger = logging.getLogger(__name__)


@dataclass
class ManualPushResult:
    sent_count: int = 0
    failed_count: int = 0
    invalid_token_count: int = 0
    total_devices: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.sent_count > 0


def send_test_push(
    session: Session,
    gateway: PushGateway,
    hygiene: TokenHygiene,
    user_id: str,
    *,
    title: str | None = None,
    body: str | None = None,
) -> PushResult:
    """Push a test message to the device currently registered by ``user_id``."""

    user = UserRepository(session).get(user_id)
    if user is None:
        raise NotFoundError("User not found")
    if not user.device_token:
        raise ValidationError(
            "device_token", "No device token registered for this user"
        )

    message = PushMessage(
        title=title or "Test Notification",
        body=body or f"Hello {user.name}! This is a test push notification.",
        template=PushTemplate.SYSTEM,
        action="open",
        data={"test": "true", "timestamp": utc_now().isoformat()},
    )
    result = gateway.send_single(user.device_token, message)
    if result.is_invalid_token:
        hygiene.clear(user.id, user.device_token)
    return result


def _send_to_pairs(
    gateway: PushGateway,
    hygiene: TokenHygiene,
    pairs: Sequence[DeviceTokenPair],
    message: PushMessage,
) -> ManualPushResult:
    if not pairs:
        return ManualPushResult(error="NO_USERS_WITH_TOKENS")

    batch = gateway.send_batch([pair.token for pair in pairs], message)
    invalid = set(batch.invalid_tokens)
    if invalid:
        hygiene.clear_many([pair for pair in pairs if pair.token in invalid])
    return ManualPushResult(
        sent_count=batch.success_count,
        failed_count=batch.failure_count,
        invalid_token_count=len(batch.invalid_tokens),
        total_devices=len(pairs),
        error=None if batch.success else "PUSH_FAILED",
    )


def send_push_to_users(
    session: Session,
    gateway: PushGateway,
    hygiene: TokenHygiene,
    user_ids: Sequence[str],
    message: PushMessage,
) -> ManualPushResult:
    pairs = UserRepository(session).get_device_tokens(user_ids)
    result = _send_to_pairs(gateway, hygiene, pairs, message)
    logger.info(
        "Manual push to %s users: %s sent, %s failed", len(user_ids), result.sent_count, result.failed_count
    )
    return result


def send_push_to_role(
    session: Session,
    gateway: PushGateway,
    hygiene: TokenHygiene,
    role: str,
    message: PushMessage,
) -> ManualPushResult:
    """Push ``message`` to every active user of ``role`` with a device token."""

    pairs = UserRepository(session).list_device_tokens_by_role(role)
    result = _send_to_pairs(gateway, hygiene, pairs, message)
    logger.info(
        "Manual push to role %s: %s sent, %s failed", role, result.sent_count, result.failed_count
    )
    return result


__all__ = [
    "ManualPushResult",
    "send_push_to_role",
    "send_push_to_users",
    "send_test_push",
]
