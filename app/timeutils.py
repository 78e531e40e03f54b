from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.settings import get_settings

logger = logging.getLogger("app.timeutils")


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or "UTC"
    try:
        return ZoneInfo(raw_name)
    except ZoneInfoNotFoundError:
        logger.warning("attendance_timezone_invalid", extra={"timezone": raw_name})
        return ZoneInfo("UTC")


def ensure_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite hands back naive values; everything is persisted in UTC.
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: datetime) -> datetime:
    return ensure_utc(value).astimezone(attendance_timezone())  # type: ignore[union-attr]


def local_day(value: datetime) -> date:
    return to_local(value).date()


def local_day_bounds_utc(day: date) -> tuple[datetime, datetime]:
    tz = attendance_timezone()
    start_local = datetime.combine(day, time.min, tzinfo=tz)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def local_range_bounds_utc(start_day: date, end_day: date) -> tuple[datetime, datetime]:
    start_utc, _ = local_day_bounds_utc(start_day)
    _, end_utc = local_day_bounds_utc(end_day)
    return start_utc, end_utc
