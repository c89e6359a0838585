"""Persistence helpers for notification entities."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy import and_, case, delete, func, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notifier.domain.entities import (
    Notification,
    NotificationCategory,
    NotificationDraft,
    NotificationFilters,
    NotificationPriority,
    PendingPush,
)
from notifier.domain.errors import StorageError
from notifier.infrastructure.models import NotificationModel, UserModel
from notifier.utils import from_storage_datetime, to_storage_datetime, utc_now_naive

logger = logging.getLogger(__name__)

_PUSH_ERROR_MAX_LENGTH = 500

_priority_rank = case(
    *((NotificationModel.priority == priority, priority.rank) for priority in NotificationPriority),
    else_=NotificationPriority.LOW.rank,
)

_SORT_COLUMNS = {
    "created_at": NotificationModel.created_at,
    "priority": _priority_rank,
    "type": NotificationModel.type,
    "category": NotificationModel.category,
    "is_read": NotificationModel.is_read,
}
DEFAULT_SORT_COLUMN = "created_at"


def _not_expired(now):
    return or_(NotificationModel.expires_at.is_(None), NotificationModel.expires_at > now)


class NotificationRepository:
    """Provide CRUD operations for :class:`Notification` objects.

    Every method commits its own unit of work. Database failures are rolled
    back and re-raised as :class:`StorageError`.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Notification store operation '%s' failed: %s", operation, exc)
            raise StorageError(f"Notification store failed during {operation}") from exc

    def insert(self, draft: NotificationDraft) -> str:
        notification_id = str(uuid.uuid4())
        with self._guard("insert"):
            self.session.execute(
                insert(NotificationModel).values(**self._draft_values(notification_id, draft))
            )
            self.session.commit()
        return notification_id

    def insert_many(
        self, drafts: Sequence[NotificationDraft], ids: Sequence[str] | None = None
    ) -> int:
        """Insert ``drafts`` in one statement, optionally with pre-assigned ``ids``."""

        if not drafts:
            return 0
        if ids is not None and len(ids) != len(drafts):
            raise ValueError("ids must match drafts one to one")
        identifiers = list(ids) if ids is not None else [str(uuid.uuid4()) for _ in drafts]
        rows = [
            self._draft_values(notification_id, draft)
            for notification_id, draft in zip(identifiers, drafts)
        ]
        with self._guard("insert_many"):
            self.session.execute(insert(NotificationModel), rows)
            self.session.commit()
        return len(rows)

    def get(self, notification_id: str) -> Notification | None:
        with self._guard("get"):
            model = self.session.get(NotificationModel, notification_id, populate_existing=True)
        return self._to_entity(model) if model else None

    def get_by_id_for_owner(self, notification_id: str, user_id: str) -> Notification | None:
        with self._guard("get_by_id_for_owner"):
            model = self.session.scalars(
                select(NotificationModel)
                .where(NotificationModel.id == notification_id)
                .where(NotificationModel.user_id == user_id)
                .execution_options(populate_existing=True)
            ).first()
        return self._to_entity(model) if model else None

    def list(
        self,
        user_id: str,
        filters: NotificationFilters | None = None,
        *,
        page: int = 1,
        limit: int = 10,
        sort_by: str = DEFAULT_SORT_COLUMN,
        sort_order: str = "desc",
    ) -> tuple[list[Notification], int]:
        filters = filters or NotificationFilters()
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = [
            NotificationModel.user_id == user_id,
            NotificationModel.is_dismissed.is_(False),
            _not_expired(utc_now_naive()),
        ]
        if filters.category is not None:
            conditions.append(NotificationModel.category == filters.category)
        if filters.type is not None:
            conditions.append(NotificationModel.type == filters.type)
        if filters.is_read is not None:
            conditions.append(NotificationModel.is_read.is_(filters.is_read))

        sort_column = _SORT_COLUMNS.get(sort_by, _SORT_COLUMNS[DEFAULT_SORT_COLUMN])
        ascending = (sort_order or "").lower() == "asc"
        ordering = sort_column.asc() if ascending else sort_column.desc()

        with self._guard("list"):
            total = self.session.scalar(
                select(func.count()).select_from(NotificationModel).where(*conditions)
            )
            models = self.session.scalars(
                select(NotificationModel)
                .where(*conditions)
                .order_by(ordering, NotificationModel.id)
                .offset((page - 1) * limit)
                .limit(limit)
                .execution_options(populate_existing=True)
            ).all()
        return [self._to_entity(model) for model in models], int(total or 0)

    def mark_read(self, notification_id: str) -> Notification | None:
        now = utc_now_naive()
        with self._guard("mark_read"):
            self.session.execute(
                update(NotificationModel)
                .where(NotificationModel.id == notification_id)
                .where(NotificationModel.is_read.is_(False))
                .values(is_read=True, read_at=now, updated_at=now)
            )
            self.session.commit()
        return self.get(notification_id)

    def mark_all_read(self, user_id: str) -> int:
        now = utc_now_naive()
        with self._guard("mark_all_read"):
            result = self.session.execute(
                update(NotificationModel)
                .where(NotificationModel.user_id == user_id)
                .where(NotificationModel.is_read.is_(False))
                .where(NotificationModel.is_dismissed.is_(False))
                .values(is_read=True, read_at=now, updated_at=now)
            )
            self.session.commit()
        return int(result.rowcount or 0)

    def dismiss(self, notification_id: str) -> Notification | None:
        now = utc_now_naive()
        with self._guard("dismiss"):
            self.session.execute(
                update(NotificationModel)
                .where(NotificationModel.id == notification_id)
                .where(NotificationModel.is_dismissed.is_(False))
                .values(is_dismissed=True, dismissed_at=now, updated_at=now)
            )
            self.session.commit()
        return self.get(notification_id)

    def delete(self, notification_id: str) -> bool:
        with self._guard("delete"):
            result = self.session.execute(
                delete(NotificationModel).where(NotificationModel.id == notification_id)
            )
            self.session.commit()
        return bool(result.rowcount)

    def unread_count(self, user_id: str) -> int:
        with self._guard("unread_count"):
            count = self.session.scalar(
                select(func.count())
                .select_from(NotificationModel)
                .where(*self._unread_conditions(user_id))
            )
        return int(count or 0)

    def unread_count_by_category(self, user_id: str) -> dict[str, int]:
        counts = {category.value: 0 for category in NotificationCategory}
        counts["total"] = 0
        with self._guard("unread_count_by_category"):
            rows = self.session.execute(
                select(NotificationModel.category, func.count())
                .where(*self._unread_conditions(user_id))
                .group_by(NotificationModel.category)
            ).all()
        for category, count in rows:
            key = NotificationCategory(category).value
            counts[key] = int(count)
            counts["total"] += int(count)
        return counts

    def update_push_status(
        self, notification_id: str, success: bool, error: str | None = None
    ) -> None:
        now = utc_now_naive()
        push_error = None if success else (error or "UNKNOWN_ERROR")[:_PUSH_ERROR_MAX_LENGTH]
        with self._guard("update_push_status"):
            self.session.execute(
                update(NotificationModel)
                .where(NotificationModel.id == notification_id)
                .values(
                    is_push_sent=bool(success),
                    push_sent_at=now,
                    push_error=push_error,
                    updated_at=now,
                )
            )
            self.session.commit()

    def update_push_status_many(
        self, notification_ids: Sequence[str], success: bool, error: str | None = None
    ) -> int:
        """Write the same push outcome to every row of ``notification_ids``."""

        if not notification_ids:
            return 0
        now = utc_now_naive()
        push_error = None if success else (error or "UNKNOWN_ERROR")[:_PUSH_ERROR_MAX_LENGTH]
        with self._guard("update_push_status_many"):
            result = self.session.execute(
                update(NotificationModel)
                .where(NotificationModel.id.in_(list(notification_ids)))
                .values(
                    is_push_sent=bool(success),
                    push_sent_at=now,
                    push_error=push_error,
                    updated_at=now,
                )
            )
            self.session.commit()
        return int(result.rowcount or 0)

    def select_pending_push(self, limit: int = 100) -> list[PendingPush]:
        now = utc_now_naive()
        query = (
            select(NotificationModel, UserModel.device_token)
            .join(UserModel, UserModel.id == NotificationModel.user_id)
            .where(NotificationModel.is_push_sent.is_(False))
            .where(NotificationModel.is_dismissed.is_(False))
            .where(
                or_(
                    NotificationModel.scheduled_at.is_(None),
                    NotificationModel.scheduled_at <= now,
                )
            )
            .where(_not_expired(now))
            .where(UserModel.device_token.is_not(None))
            .where(UserModel.device_token != "")
            .order_by(_priority_rank.desc(), NotificationModel.created_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        with self._guard("select_pending_push"):
            rows = self.session.execute(query).all()
        return [
            PendingPush(notification=self._to_entity(model), device_token=token)
            for model, token in rows
        ]

    def delete_expired(self) -> int:
        with self._guard("delete_expired"):
            result = self.session.execute(
                delete(NotificationModel).where(
                    and_(
                        NotificationModel.expires_at.is_not(None),
                        NotificationModel.expires_at < utc_now_naive(),
                    )
                )
            )
            self.session.commit()
        return int(result.rowcount or 0)

    def delete_old_read(self, days: int = 30) -> int:
        cutoff = utc_now_naive() - timedelta(days=days)
        with self._guard("delete_old_read"):
            result = self.session.execute(
                delete(NotificationModel)
                .where(NotificationModel.is_read.is_(True))
                .where(NotificationModel.is_dismissed.is_(False))
                .where(NotificationModel.created_at < cutoff)
            )
            self.session.commit()
        return int(result.rowcount or 0)

    @staticmethod
    def _unread_conditions(user_id: str) -> list:
        return [
            NotificationModel.user_id == user_id,
            NotificationModel.is_read.is_(False),
            NotificationModel.is_dismissed.is_(False),
            _not_expired(utc_now_naive()),
        ]

    @staticmethod
    def _draft_values(notification_id: str, draft: NotificationDraft) -> dict[str, object]:
        now = utc_now_naive()
        return {
            "id": notification_id,
            "user_id": draft.recipient_id,
            "title": draft.title,
            "body": draft.body,
            "summary": draft.summary,
            "type": draft.type,
            "category": draft.category,
            "entity_type": draft.entity_type,
            "entity_id": draft.entity_id,
            "action_url": draft.action_url,
            "action_type": draft.action_type,
            "image_url": draft.image_url,
            "icon": draft.icon,
            "priority": draft.priority,
            "sender_id": draft.sender_id,
            "data": draft.data,
            "scheduled_at": to_storage_datetime(draft.scheduled_at),
            "expires_at": to_storage_datetime(draft.expires_at),
            "created_at": now,
            "updated_at": now,
        }

    @staticmethod
    def _to_entity(model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            recipient_id=model.user_id,
            title=model.title,
            body=model.body,
            summary=model.summary,
            type=model.type,
            category=model.category,
            entity_type=model.entity_type,
            entity_id=model.entity_id,
            action_url=model.action_url,
            action_type=model.action_type,
            image_url=model.image_url,
            icon=model.icon,
            priority=model.priority,
            sender_id=model.sender_id,
            data=model.data,
            is_read=bool(model.is_read),
            read_at=from_storage_datetime(model.read_at),
            is_dismissed=bool(model.is_dismissed),
            dismissed_at=from_storage_datetime(model.dismissed_at),
            is_push_sent=bool(model.is_push_sent),
            push_sent_at=from_storage_datetime(model.push_sent_at),
            push_error=model.push_error,
            scheduled_at=from_storage_datetime(model.scheduled_at),
            expires_at=from_storage_datetime(model.expires_at),
            created_at=from_storage_datetime(model.created_at),
            updated_at=from_storage_datetime(model.updated_at),
        )


__all__ = ["DEFAULT_SORT_COLUMN", "NotificationRepository"]
