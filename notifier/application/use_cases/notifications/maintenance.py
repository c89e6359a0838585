"""Retention jobs for the notifications table."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from notifier.infrastructure.repositories import NotificationRepository

logger = logging.getLogger(__name__)


@dataclass
class RetentionResult:
    expired: int = 0
    old_read: int = 0


def purge_notifications(session: Session, *, read_older_than_days: int = 30) -> RetentionResult:
    """Delete expired rows and read rows older than ``read_older_than_days``."""

    if read_older_than_days < 1:
        raise ValueError("read_older_than_days must be a positive integer")

    repository = NotificationRepository(session)
    result = RetentionResult(
        expired=repository.delete_expired(),
        old_read=repository.delete_old_read(read_older_than_days),
    )
    logger.info(
        "Notification retention removed %s expired and %s read rows",
        result.expired,
        result.old_read,
    )
    return result


__all__ = ["RetentionResult", "purge_notifications"]
