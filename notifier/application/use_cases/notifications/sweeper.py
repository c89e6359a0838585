"""Retry pass for notifications whose push was never delivered."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from notifier.domain.entities import PendingPush, PushMessage, PushResult
from notifier.domain.ports import NotificationStore, PushGateway
from notifier.infrastructure.repositories import NotificationRepository

from .token_hygiene import TokenHygiene

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    processed: int = 0
    success: int = 0
    failed: int = 0
    skipped: bool = False


class PendingSweeper:
    """Re-drive the push step for rows that are due and still unsent.

    Rows are taken most urgent first, then oldest first. Each row is finalized
    on its own, so an interrupted sweep leaves finished rows recorded and the
    rest eligible for the next run. Only one sweep runs at a time per process;
    separate processes may still push the same row twice.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        push_gateway: PushGateway,
        *,
        token_hygiene: TokenHygiene | None = None,
        store_factory: Callable[[Session], NotificationStore] = NotificationRepository,
        default_limit: int = 100,
    ) -> None:
        self._session_factory = session_factory
        self._push_gateway = push_gateway
        self._token_hygiene = token_hygiene or TokenHygiene(session_factory)
        self._store_factory = store_factory
        self._default_limit = default_limit
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run(self, limit: int | None = None) -> SweepResult:
        if not self._lock.acquire(blocking=False):
            logger.info("Pending push sweep already running; skipping")
            return SweepResult(skipped=True)
        try:
            return self._sweep(limit or self._default_limit)
        finally:
            self._lock.release()

    def _sweep(self, limit: int) -> SweepResult:
        if not self._push_gateway.is_configured:
            logger.warning("Push gateway not configured; pending sweep skipped")
            return SweepResult()

        session = self._session_factory()
        try:
            store = self._store_factory(session)
            pending = store.select_pending_push(limit)
            result = SweepResult()
            if not pending:
                return result

            for row in pending:
                outcome = self._send(row)
                try:
                    store.update_push_status(
                        row.notification.id,
                        outcome.success,
                        None if outcome.success else outcome.error,
                    )
                finally:
                    if outcome.is_invalid_token:
                        self._token_hygiene.clear(row.notification.recipient_id, row.device_token)
                result.processed += 1
                if outcome.success:
                    result.success += 1
                else:
                    result.failed += 1
        finally:
            session.close()

        logger.info(
            "Processed pending push notifications: %s total, %s sent, %s failed",
            result.processed,
            result.success,
            result.failed,
        )
        return result

    def _send(self, row: PendingPush) -> PushResult:
        message = PushMessage.from_notification(row.notification)
        try:
            return self._push_gateway.send_single(row.device_token, message)
        except Exception as exc:
            logger.exception("Push gateway raised for notification %s", row.notification.id)
            return PushResult(success=False, error=str(exc) or type(exc).__name__)


__all__ = ["PendingSweeper", "SweepResult"]
