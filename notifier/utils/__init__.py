"""Utility helpers for reusable functionality."""

from .datetime import (
    from_storage_datetime,
    iso_or_none,
    to_storage_datetime,
    utc_now,
    utc_now_naive,
)

__all__ = [
    "from_storage_datetime",
    "iso_or_none",
    "to_storage_datetime",
    "utc_now",
    "utc_now_naive",
]
