"""Best-effort realtime delivery to currently connected websocket clients."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Coroutine
from datetime import datetime
from typing import Any

from anyio import from_thread

from notifier.utils import utc_now

from .manager import NotificationConnectionManager, notification_manager

logger = logging.getLogger(__name__)


class RealtimeBus:
    """Publish events to the sessions connected *right now*.

    Delivery is attempted at most once; nothing is queued for offline users and
    no method ever raises to its caller.
    """

    def __init__(self, manager: NotificationConnectionManager) -> None:
        self._manager = manager
        self._loop: asyncio.AbstractEventLoop | None = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop | None) -> None:
        """Remember the loop that owns the websockets so worker threads can reach it."""

        self._loop = loop

    def publish(self, user_id: str, event: str, payload: Any) -> None:
        """Schedule ``event`` for every connection of ``user_id``."""

        if not user_id:
            return
        try:
            message = self._envelope(event, payload)
            self._schedule(self._manager.send_to_user, user_id, message)
        except Exception:
            logger.exception("Failed to publish realtime event %s to user %s", event, user_id)

    def publish_to_role(self, role: str, event: str, payload: Any) -> None:
        if not role:
            return
        try:
            message = self._envelope(event, payload)
            self._schedule(self._manager.send_to_role, role, message)
        except Exception:
            logger.exception("Failed to publish realtime event %s to role %s", event, role)

    def publish_to_all(self, event: str, payload: Any) -> None:
        try:
            message = self._envelope(event, payload)
            self._schedule(self._manager.broadcast, None, message)
        except Exception:
            logger.exception("Failed to broadcast realtime event %s", event)

    @staticmethod
    def _envelope(event: str, payload: Any) -> dict[str, Any]:
        data = copy.deepcopy(payload)
        _normalize_datetime_values(data)
        return {"type": event, "data": data, "timestamp": utc_now().isoformat()}

    def _schedule(
        self,
        send: Callable[..., Coroutine[Any, Any, int]],
        target: Any,
        message: dict[str, Any],
    ) -> None:
        args = (message,) if target is None else (target, message)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None:
            running.create_task(send(*args))
            return

        loop = self._loop
        if loop is not None and not loop.is_closed():
            asyncio.run_coroutine_threadsafe(send(*args), loop)
            return

        # Sync FastAPI handlers run in AnyIO worker threads and can hop back.
        try:
            from_thread.run(send, *args)
        except RuntimeError:
            logger.debug(
                "No event loop available; realtime event %s dropped", message.get("type")
            )


def _normalize_datetime_values(data: Any) -> None:
    """Convert ``datetime`` instances nested inside ``data`` into ISO strings."""

    if isinstance(data, dict):
        items = data.items()
    elif isinstance(data, list):
        items = enumerate(data)
    else:
        return
    for key, value in list(items):
        if isinstance(value, datetime):
            data[key] = value.isoformat()
        elif isinstance(value, (dict, list)):
            _normalize_datetime_values(value)


realtime_bus = RealtimeBus(notification_manager)


__all__ = ["RealtimeBus", "realtime_bus"]
