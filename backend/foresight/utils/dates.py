# foresight/utils/dates.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes even for timezone-aware columns; treat those as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_past(value: datetime, now: Optional[datetime] = None) -> bool:
    """True once ``value`` is at or before ``now``."""
    return as_utc(value) <= (now or utcnow())


__all__ = ["utcnow", "as_utc", "is_past"]
