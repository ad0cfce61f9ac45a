from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from .config import TIMEZONE


def local_zone(tz_name: str | None = None) -> ZoneInfo:
    return ZoneInfo(tz_name or TIMEZONE)


def to_local(dt: datetime, tz_name: str | None = None) -> datetime:
    """Convert to the configured zone. Naive datetimes are taken as local time."""
    tz = local_zone(tz_name)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def local_date(dt: datetime, tz_name: str | None = None) -> date:
    return to_local(dt, tz_name).date()
