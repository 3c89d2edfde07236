"""
Timezone utilities for the booking engine.

Slots are stored in UTC; provider templates are written in the provider's
local wall-clock time.
"""

from datetime import date, datetime, time, timezone
from typing import Optional

import pytz


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    SQLite hands back naive datetimes for ``DateTime(timezone=True)`` columns;
    those are treated as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """``as_utc`` that passes ``None`` through, for nullable columns."""
    if value is None:
        return None
    return as_utc(value)


def get_timezone(name: str) -> pytz.BaseTzInfo:
    """Resolve an IANA timezone name, raising ValueError for unknown names."""
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def local_to_utc(day: date, wall_time: time, tz_name: str) -> datetime:
    """
    Convert a provider-local date and wall-clock time to aware UTC.

    A wall-clock time repeated by a fall-back change resolves to its first
    (daylight) occurrence. A time skipped by a spring-forward change does not
    exist and raises ``pytz.NonExistentTimeError``.
    """
    tz = get_timezone(tz_name)
    naive = datetime.combine(day, wall_time)
    try:
        local_dt = tz.localize(naive, is_dst=None)
    except pytz.AmbiguousTimeError:
        local_dt = tz.localize(naive, is_dst=True)
    return local_dt.astimezone(timezone.utc)


def local_date(value: datetime, tz_name: str) -> date:
    """Provider-local calendar date of an instant."""
    return as_utc(value).astimezone(get_timezone(tz_name)).date()
