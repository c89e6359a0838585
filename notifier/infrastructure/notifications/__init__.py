"""Realtime notification helpers for the infrastructure layer."""

from .manager import NotificationConnectionManager, notification_manager
from .realtime import RealtimeBus, realtime_bus

__all__ = [
    "NotificationConnectionManager",
    "notification_manager",
    "RealtimeBus",
    "realtime_bus",
]
