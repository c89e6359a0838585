"""Aggregate application use cases."""

from .notifications import DeliveryCoordinator, PendingSweeper, TokenHygiene

__all__ = [
    "DeliveryCoordinator",
    "PendingSweeper",
    "TokenHygiene",
]
