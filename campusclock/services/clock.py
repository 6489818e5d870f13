"""
Wall-clock helpers.

All timestamps are persisted as UTC; attendance rules are evaluated in the
configured local timezone. SQLite hands back naive datetimes, which are
always UTC here.
"""

from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from campusclock.core.config import settings


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def local_tz() -> tzinfo:
    return _zone(settings.TIMEZONE)


def now_local() -> datetime:
    return datetime.now(local_tz())


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a potentially-naive timestamp to UTC-aware."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_local(dt: datetime, tz: tzinfo | None = None) -> datetime:
    return ensure_utc(dt).astimezone(tz or local_tz())


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday, the numbering timetable slots use."""
    return day.isoweekday() % 7
