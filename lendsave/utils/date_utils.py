"""Date manipulation utilities"""

import calendar
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (SQLite drops tzinfo) as UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def add_months(from_dt: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month (Jan 31 + 1 -> Feb 28/29)"""
    month_index = from_dt.month - 1 + months
    year = from_dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(from_dt.day, calendar.monthrange(year, month)[1])
    return from_dt.replace(year=year, month=month, day=day)
