"""
Timezone utilities for the clinic booking core.

All persisted instants are UTC. Schedules are expressed in the clinic's local
wall-clock time, so availability math converts between the two here.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

import pytz
from pytz.tzinfo import BaseTzInfo

from .config import settings
from .exceptions import ValidationException


def get_timezone(name: Optional[str] = None) -> BaseTzInfo:
    """
    Resolve a timezone name, defaulting to the configured clinic timezone.

    Raises:
        ValidationException: If the name is not a known IANA zone
    """
    tz_name = name or settings.default_timezone
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        raise ValidationException(
            f"Unknown timezone: {tz_name}", code="INVALID_TIMEZONE", details={"timezone": tz_name}
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_today(tz: BaseTzInfo) -> date:
    """Get 'today' in the given timezone."""
    return datetime.now(tz).date()


def localize(target_date: date, wall_time: time, tz: BaseTzInfo) -> datetime:
    """Attach a timezone to a local wall-clock date/time."""
    return tz.localize(datetime.combine(target_date, wall_time))


def to_local(value: datetime, tz: BaseTzInfo) -> datetime:
    return ensure_utc(value).astimezone(tz)


def day_bounds_utc(target_date: date, tz: BaseTzInfo) -> Tuple[datetime, datetime]:
    """Return the UTC [start, end) instants of a local calendar day."""
    start = localize(target_date, time(0, 0), tz)
    end = localize(target_date + timedelta(days=1), time(0, 0), tz)
    return ensure_utc(start), ensure_utc(end)


def day_of_week(target_date: date) -> int:
    """Day-of-week with Sunday as 0, matching how schedules are stored."""
    return (target_date.weekday() + 1) % 7


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")
