"""Clock helpers shared by the ledgers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, so every comparison goes through ``as_utc``.
"""
from datetime import date, datetime, time, timezone
from typing import Optional

import pytz

from student_events.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime, or convert an aware one to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def local_to_utc(day: date, hhmm: Optional[str], tz_name: Optional[str] = None) -> datetime:
    """Interpret a calendar date + ``HH:MM`` in the campus timezone, return UTC."""
    tz = pytz.timezone(tz_name or settings.EVENT_TIMEZONE)
    wall = datetime.combine(day, parse_hhmm(hhmm) if hhmm else time(0, 0))
    return tz.localize(wall).astimezone(timezone.utc)
