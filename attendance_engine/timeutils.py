from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from attendance_engine.errors import ValidationFailedError
from attendance_engine.settings import get_settings

logger = logging.getLogger("attendance_engine.timeutils")

DEFAULT_TIMEZONE = "Asia/Kolkata"


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except ZoneInfoNotFoundError:
        logger.warning("attendance_timezone_invalid", extra={"timezone": raw_name})
        return ZoneInfo(DEFAULT_TIMEZONE)


def validate_month(year: int, month: int) -> None:
    if month < 1 or month > 12:
        raise ValidationFailedError("Month must be between 1 and 12.")
    if year < 1970 or year > 9999:
        raise ValidationFailedError("Year is out of range.")


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return (first_day, last_day) of the month, both inclusive."""
    validate_month(year, month)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def iter_month_days(year: int, month: int) -> list[date]:
    start_date, end_date = month_bounds(year, month)
    return [start_date + timedelta(days=offset) for offset in range((end_date - start_date).days + 1)]


def week_of_month(day_date: date) -> int:
    return (day_date.day - 1) // 7 + 1


def to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_hhmm(value: str) -> time:
    try:
        hour_str, minute_str = value.strip().split(":")
        hour = int(hour_str)
        minute = int(minute_str)
    except ValueError as exc:
        raise ValidationFailedError("Invalid time format, expected HH:MM.") from exc
    if hour < 0 or hour > 23 or minute < 0 or minute > 59:
        raise ValidationFailedError("Invalid time format, expected HH:MM.")
    return time(hour=hour, minute=minute)


def combine_utc(day_date: date, hhmm: str | None) -> datetime | None:
    if hhmm is None:
        return None
    local_dt = datetime.combine(day_date, parse_hhmm(hhmm), tzinfo=attendance_timezone())
    return local_dt.astimezone(timezone.utc)


def format_local_hhmm(value: datetime | None) -> str | None:
    utc_value = to_utc(value)
    if utc_value is None:
        return None
    return utc_value.astimezone(attendance_timezone()).strftime("%H:%M")
