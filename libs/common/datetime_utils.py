"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    This replaces the deprecated datetime.utcnow() which returns naive datetimes.
    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a naive datetime read back from the database.

    SQLite drops tzinfo from ``DateTime(timezone=True)`` columns, so anything
    compared against ``utc_now()`` goes through here first.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
