from datetime import date, datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def start_of_month(now: Optional[datetime] = None) -> date:
    """First day of the UTC calendar month containing `now`."""
    now = now or utcnow()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return date(now.year, now.month, 1)


def month_start_datetime(month_start: date) -> datetime:
    """Midnight UTC at the start of `month_start`."""
    return datetime.combine(month_start, time.min, tzinfo=timezone.utc)
