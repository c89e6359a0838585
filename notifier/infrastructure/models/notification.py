"""SQLAlchemy model for persisted notifications."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.sql import expression

from notifier.domain.entities import (
    NotificationCategory,
    NotificationPriority,
    NotificationType,
)
from notifier.infrastructure.database import Base
from notifier.utils import utc_now_naive


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class NotificationModel(Base):
    """Database representation for user notifications."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read", "is_dismissed", "created_at"),
        Index("idx_notifications_user_category", "user_id", "category", "created_at"),
        Index("idx_notifications_pending_push", "is_push_sent", "scheduled_at"),
    )

    id = Column(String(36), primary_key=True)
    user_id = Column(
        String(36), ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    summary = Column(String(500), nullable=True)
    type = Column(
        Enum(NotificationType, values_callable=_enum_values, name="notification_type"),
        nullable=False,
        default=NotificationType.INFO,
    )
    category = Column(
        Enum(NotificationCategory, values_callable=_enum_values, name="notification_category"),
        nullable=False,
        default=NotificationCategory.SYSTEM,
        index=True,
    )
    entity_type = Column(String(100), nullable=True)
    entity_id = Column(String(36), nullable=True)
    action_url = Column(String(500), nullable=True)
    action_type = Column(String(50), nullable=True)
    image_url = Column(String(500), nullable=True)
    icon = Column(String(100), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    read_at = Column(DateTime, nullable=True)
    is_dismissed = Column(
        Boolean, nullable=False, default=False, server_default=expression.false()
    )
    dismissed_at = Column(DateTime, nullable=True)
    is_push_sent = Column(
        Boolean, nullable=False, default=False, server_default=expression.false()
    )
    push_sent_at = Column(DateTime, nullable=True)
    push_error = Column(String(500), nullable=True)
    scheduled_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)
    priority = Column(
        Enum(NotificationPriority, values_callable=_enum_values, name="notification_priority"),
        nullable=False,
        default=NotificationPriority.NORMAL,
    )
    sender_id = Column(
        String(36), ForeignKey("user.id", ondelete="SET NULL"), nullable=True
    )
    data = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now_naive)
    updated_at = Column(
        DateTime, nullable=False, default=utc_now_naive, onupdate=utc_now_naive
    )


__all__ = ["NotificationModel"]
