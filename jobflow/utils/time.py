from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def seconds_between(start: Optional[datetime], end: datetime) -> int:
    """Whole seconds from start to end, never negative."""
    start = ensure_utc(start)
    if start is None:
        return 0
    return max(0, int((ensure_utc(end) - start).total_seconds()))
