"""Connection management helpers for notification websockets."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, DefaultDict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class NotificationConnectionManager:
    """Manage active websocket connections grouped by user and role."""

    def __init__(self) -> None:
        self._connections: DefaultDict[str, Set[WebSocket]] = defaultdict(set)
        self._roles: dict[str, str] = {}

    async def connect(self, user_id: str, websocket: WebSocket, *, role: str | None = None) -> None:
        """Accept the websocket connection and register it for ``user_id``."""

        await websocket.accept()
        self.register(user_id, websocket, role=role)

    def register(self, user_id: str, websocket: WebSocket, *, role: str | None = None) -> None:
        self._connections[user_id].add(websocket)
        if role:
            self._roles[user_id] = role.lower()

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        """Remove ``websocket`` from the pool for ``user_id``."""

        connections = self._connections.get(user_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop(user_id, None)
            self._roles.pop(user_id, None)

    def is_connected(self, user_id: str) -> bool:
        return bool(self._connections.get(user_id))

    def connected_user_ids(self, *, role: str | None = None) -> list[str]:
        if role is None:
            return list(self._connections)
        wanted = role.lower()
        return [user_id for user_id in self._connections if self._roles.get(user_id) == wanted]

    async def send_to_user(self, user_id: str, message: dict[str, Any]) -> int:
        """Send ``message`` to every active connection for ``user_id``.

        Returns the number of sockets that accepted the message. Broken sockets
        are dropped from the pool.
        """

        delivered = 0
        connections = list(self._connections.get(user_id, set()))
        for connection in connections:
            try:
                await connection.send_json(message)
            except Exception as exc:  # socket already closed or transport error
                logger.debug("Dropping websocket for user %s: %s", user_id, exc)
                self.disconnect(user_id, connection)
            else:
                delivered += 1
        return delivered

    async def send_to_role(self, role: str, message: dict[str, Any]) -> int:
        delivered = 0
        for user_id in self.connected_user_ids(role=role):
            delivered += await self.send_to_user(user_id, message)
        return delivered

    async def broadcast(self, message: dict[str, Any]) -> int:
        delivered = 0
        for user_id in self.connected_user_ids():
            delivered += await self.send_to_user(user_id, message)
        return delivered


notification_manager = NotificationConnectionManager()


__all__ = ["NotificationConnectionManager", "notification_manager"]
