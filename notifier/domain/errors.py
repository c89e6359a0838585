"""Error taxonomy for the notification core.

Only :class:`ValidationError`, :class:`NotFoundError` and :class:`StorageError`
reach callers. Channel failures are represented by :class:`DeliveryError` and
:class:`InvalidCredentialError`; they are logged and handled internally.
"""

from __future__ import annotations


class NotificationError(Exception):
    """Base class for errors raised by the notification core."""


class ValidationError(NotificationError):
    """A required field is missing; raised before anything is persisted."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"{field} is required")


class NotFoundError(NotificationError):
    """The notification does not exist or belongs to another user."""


class StorageError(NotificationError):
    """The persistence layer failed; nothing downstream can proceed."""


class DeliveryError(NotificationError):
    """Transient realtime or push failure, retried by the pending sweep."""


class InvalidCredentialError(DeliveryError):
    """The push provider confirmed that a device token is dead."""

    def __init__(self, user_id: str | None, token: str, code: str | None = None) -> None:
        self.user_id = user_id
        self.token = token
        self.code = code
        super().__init__(f"Invalid device token for user {user_id}: {code}")


__all__ = [
    "DeliveryError",
    "InvalidCredentialError",
    "NotFoundError",
    "NotificationError",
    "StorageError",
    "ValidationError",
]
