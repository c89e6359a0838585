"""Persistence layer for the account data this service depends on."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notifier.domain.entities import DeviceTokenPair, User
from notifier.domain.errors import StorageError
from notifier.infrastructure.models import UserModel

logger = logging.getLogger(__name__)


class UserRepository:
    """Read accounts and manage the device token stored on each of them."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: str) -> User | None:
        model = self.session.get(UserModel, user_id, populate_existing=True)
        return self._to_entity(model) if model else None

    def get_device_token(self, user_id: str) -> str | None:
        token = self.session.scalar(
            select(UserModel.device_token).where(UserModel.id == user_id)
        )
        return token or None

    def get_device_tokens(self, user_ids: Iterable[str]) -> list[DeviceTokenPair]:
        """Return the non-empty tokens of ``user_ids`` in a single query."""

        unique_ids = list(dict.fromkeys(user_id for user_id in user_ids if user_id))
        if not unique_ids:
            return []
        rows = self.session.execute(
            select(UserModel.id, UserModel.device_token)
            .where(UserModel.id.in_(unique_ids))
            .where(UserModel.device_token.is_not(None))
            .where(UserModel.device_token != "")
        ).all()
        by_id = {user_id: token for user_id, token in rows}
        return [
            DeviceTokenPair(user_id=user_id, token=by_id[user_id])
            for user_id in unique_ids
            if user_id in by_id
        ]

    def list_device_tokens_by_role(self, role: str) -> list[DeviceTokenPair]:
        rows = self.session.execute(
            select(UserModel.id, UserModel.device_token)
            .where(UserModel.role == role)
            .where(UserModel.is_active.is_(True))
            .where(UserModel.device_token.is_not(None))
            .where(UserModel.device_token != "")
            .order_by(UserModel.id)
        ).all()
        return [DeviceTokenPair(user_id=user_id, token=token) for user_id, token in rows]

    def register_device_token(self, user_id: str, token: str | None) -> bool:
        """Store ``token`` as the current device token of ``user_id``."""

        try:
            result = self.session.execute(
                update(UserModel)
                .where(UserModel.id == user_id)
                .values(device_token=token or None)
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError("Could not register device token") from exc
        return bool(result.rowcount)

    def clear_device_token_if_matches(self, user_id: str, token: str) -> bool:
        """Clear the token of ``user_id`` only while it still equals ``token``."""

        result = self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .where(UserModel.device_token == token)
            .values(device_token=None)
        )
        self.session.commit()
        return bool(result.rowcount)

    def clear_device_tokens_if_match(self, pairs: Sequence[DeviceTokenPair]) -> int:
        """Apply :meth:`clear_device_token_if_matches` to every pair atomically."""

        if not pairs:
            return 0
        cleared = 0
        try:
            for pair in pairs:
                result = self.session.execute(
                    update(UserModel)
                    .where(UserModel.id == pair.user_id)
                    .where(UserModel.device_token == pair.token)
                    .values(device_token=None)
                )
                cleared += int(result.rowcount or 0)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return cleared

    @staticmethod
    def _to_entity(model: UserModel) -> User:
        return User(
            id=model.id,
            name=model.name,
            role=model.role,
            is_active=bool(model.is_active),
            device_token=model.device_token,
        )


__all__ = ["UserRepository"]
