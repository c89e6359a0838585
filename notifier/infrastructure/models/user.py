"""SQLAlchemy model for the user table.

The account aggregate belongs to the user module; only the columns this
service reads or writes are mapped here.
"""

from sqlalchemy import Boolean, Column, DateTime, String, func

from notifier.infrastructure.database import Base


class UserModel(Base):
    """Database representation of an account and its push token."""

    __tablename__ = "user"

    id = Column(String(36), primary_key=True)
    name = Column(String(120), nullable=False)
    role = Column(String(50), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    device_token = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
