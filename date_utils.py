"""
Date normalization for day views: strict YYYY-MM-DD parsing, local day windows, and
UTC-midnight storage dates whose date-only prefix is the same in every timezone.
"Local" is the configured user timezone.
"""
from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from errors import InvalidDate

logger = logging.getLogger(__name__)

# 0 = Sunday
WEEKDAYS = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")
_END_OF_DAY = time(23, 59, 59, 999000)


class DayWindow(NamedTuple):
    day: date
    local_start: datetime
    local_end: datetime
    utc_midnight: datetime


def zone(tz_name: str | None) -> ZoneInfo:
    name = (tz_name or "").strip() or "UTC"
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return ZoneInfo("UTC")


def today_local(tz_name: str = "UTC") -> date:
    return datetime.now(zone(tz_name)).date()


def parse_date(value: str | None) -> date:
    """Parse a strict YYYY-MM-DD string. Raises InvalidDate on anything else (including 2025-02-30)."""
    m = _ISO_DATE.match((value or "").strip()) if isinstance(value, str) else None
    if not m:
        raise InvalidDate(f"Invalid date {value!r} (expected YYYY-MM-DD)")
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        raise InvalidDate(f"Invalid date {value!r}: out of range") from None


def utc_midnight(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def day_window(day: date, tz_name: str = "UTC") -> DayWindow:
    tz = zone(tz_name)
    return DayWindow(
        day=day,
        local_start=datetime.combine(day, time.min, tzinfo=tz),
        local_end=datetime.combine(day, _END_OF_DAY, tzinfo=tz),
        utc_midnight=utc_midnight(day),
    )


def normalize(value: str | date, tz_name: str = "UTC") -> DayWindow:
    """
    Turn a calendar date into its local day window (00:00:00.000-23:59:59.999) and its
    UTC-midnight storage form. Strings must be YYYY-MM-DD.
    """
    if isinstance(value, datetime):
        value = value.date()
    day = value if isinstance(value, date) else parse_date(value)
    return day_window(day, tz_name)


def offset(n: int, tz_name: str = "UTC", today: date | None = None) -> tuple[date, datetime]:
    """
    Today's local date shifted by n days (negative = past), with its UTC-midnight form.
    Raises InvalidDate when the result falls outside the supported calendar.
    """
    try:
        day = (today or today_local(tz_name)) + timedelta(days=int(n))
    except OverflowError:
        raise InvalidDate(f"Day offset {n} is out of range") from None
    return day, utc_midnight(day)


def weekday_of(day: date) -> str:
    # date.weekday() is Monday=0
    return WEEKDAYS[(day.weekday() + 1) % 7]


def parse_hhmm(value: str | None) -> tuple[int, int] | None:
    """Return (hour, minute) for an H:mm / HH:mm string, or None if malformed or not a clock time."""
    if not value or not isinstance(value, str):
        return None
    m = _HHMM.match(value.strip())
    if not m:
        return None
    hh, mm = int(m.group(1)), int(m.group(2))
    if hh > 23 or mm > 59:
        return None
    return hh, mm


def at_time(day: date, hhmm: str | None, tz_name: str = "UTC") -> datetime | None:
    """Absolute local datetime for HH:mm on the given day; None when hhmm is missing or malformed."""
    parts = parse_hhmm(hhmm)
    if parts is None:
        return None
    return datetime(day.year, day.month, day.day, parts[0], parts[1], tzinfo=zone(tz_name))


def calendar_date(value: datetime) -> date:
    """Calendar date of a stored UTC-midnight timestamp, independent of the local zone."""
    if value.tzinfo is None:
        return value.date()
    return value.astimezone(timezone.utc).date()


def parse_timestamp(value: str | datetime | None, tz_name: str = "UTC") -> datetime | None:
    """
    Parse an ISO-8601 timestamp. A bare YYYY-MM-DD means local midnight; values without an
    offset are read in the local zone. Returns an aware datetime, or None for empty input.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        raw = str(value).strip()
        if _ISO_DATE.match(raw):
            return normalize(raw, tz_name).local_start
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidDate(f"Invalid timestamp {value!r} (expected ISO-8601)") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=zone(tz_name))
    return dt


def to_storage_date(value: str | datetime | None, tz_name: str = "UTC") -> datetime | None:
    """
    Normalize a task date for storage: the calendar day it names (in local time, for full
    timestamps) at 00:00 UTC. A value already at 00:00 UTC keeps its UTC date, so stored
    dates sent back by clients do not drift.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, str) and _ISO_DATE.match(value.strip()):
        return utc_midnight(parse_date(value))
    dt = parse_timestamp(value, tz_name)
    if dt.utcoffset() == timedelta(0) and dt.timetz().replace(tzinfo=None) == time.min:
        return utc_midnight(dt.date())
    return utc_midnight(dt.astimezone(zone(tz_name)).date())


def to_utc_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
