from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_seconds(started_at: Optional[datetime], finished_at: datetime) -> int:
    """Whole seconds between two instants, never negative. Unstarted steps count 0."""
    if started_at is None:
        return 0
    delta = as_utc(finished_at) - as_utc(started_at)
    return max(int(delta.total_seconds()), 0)
