"""Removal of device tokens the push provider reported as dead."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notifier.domain.entities import DeviceTokenPair
from notifier.domain.ports import AccountStore
from notifier.infrastructure.repositories import UserRepository

logger = logging.getLogger(__name__)


class TokenHygiene:
    """Clear stale device tokens without clobbering a newer registration.

    Every write is conditional on the stored token still being the value that
    was used for the failed send, so a token installed by a concurrent login
    survives. Failures are logged and never raised.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        store_factory: Callable[[Session], AccountStore] = UserRepository,
    ) -> None:
        self._session_factory = session_factory
        self._store_factory = store_factory

    def clear(self, user_id: str, token: str) -> bool:
        if not user_id or not token:
            return False
        session = self._session_factory()
        try:
            cleared = self._store_factory(session).clear_device_token_if_matches(user_id, token)
        except SQLAlchemyError as exc:
            logger.error("Error clearing invalid device token for user %s: %s", user_id, exc)
            return False
        finally:
            session.close()

        if cleared:
            logger.info("Invalid device token cleared for user %s", user_id)
        else:
            logger.info("Device token for user %s changed before cleanup; kept", user_id)
        return cleared

    def clear_many(self, pairs: Sequence[DeviceTokenPair]) -> int:
        """Clear every pair in one transaction and return how many were removed."""

        valid_pairs = [pair for pair in pairs if pair.user_id and pair.token]
        if not valid_pairs:
            return 0
        session = self._session_factory()
        try:
            cleared = self._store_factory(session).clear_device_tokens_if_match(valid_pairs)
        except SQLAlchemyError as exc:
            logger.error("Error clearing %s invalid device tokens: %s", len(valid_pairs), exc)
            return 0
        finally:
            session.close()

        logger.info("Invalid device tokens cleared: %s of %s", cleared, len(valid_pairs))
        return cleared


__all__ = ["TokenHygiene"]
