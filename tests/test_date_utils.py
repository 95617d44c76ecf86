# ruff: noqa

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytest

from date_utils import (
    WEEKDAYS,
    at_time,
    calendar_date,
    normalize,
    offset,
    parse_hhmm,
    parse_timestamp,
    to_storage_date,
    to_utc_iso,
    weekday_of,
)
from errors import InvalidDate

ZONES = ["UTC", "America/New_York", "America/Los_Angeles", "Asia/Tokyo", "Pacific/Kiritimati", "Pacific/Pago_Pago"]


def test_normalize_builds_inclusive_local_window() -> None:
    w = normalize("2025-03-10", "Asia/Tokyo")
    assert w.day == date(2025, 3, 10)
    assert w.local_start.date() == date(2025, 3, 10)
    assert w.local_start.timetz().replace(tzinfo=None) == time(0, 0)
    assert w.local_end.timetz().replace(tzinfo=None) == time(23, 59, 59, 999000)
    assert w.local_start.utcoffset() == timedelta(hours=9)
    assert w.utc_midnight == datetime(2025, 3, 10, tzinfo=timezone.utc)


@pytest.mark.parametrize("tz_name", ZONES)
def test_utc_midnight_round_trips_in_every_zone(tz_name: str) -> None:
    stored = to_utc_iso(normalize("2025-03-10", tz_name).utc_midnight)
    assert stored == "2025-03-10T00:00:00Z"
    assert stored[:10] == "2025-03-10"
    assert calendar_date(parse_timestamp(stored, tz_name)) == date(2025, 3, 10)


@pytest.mark.parametrize(
    "value",
    ["", "2025-3-10", "2025-13-01", "2025-02-30", "2025-00-10", "abcd-ef-gh", "2025-03-10T00:00:00Z", None, 20250310],
)
def test_normalize_rejects_malformed_dates(value) -> None:
    with pytest.raises(InvalidDate):
        normalize(value)


def test_invalid_date_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        normalize("yesterday")


def test_offset_crosses_year_boundary() -> None:
    day, midnight = offset(1, today=date(2025, 12, 31))
    assert day == date(2026, 1, 1)
    assert midnight == datetime(2026, 1, 1, tzinfo=timezone.utc)
    past, _ = offset(-3, today=date(2025, 3, 1))
    assert past == date(2025, 2, 26)


@pytest.mark.parametrize("n", [10**9, 3 * 10**6, -(10**6)])
def test_offset_out_of_calendar_is_invalid_date(n: int) -> None:
    with pytest.raises(InvalidDate):
        offset(n, today=date(2025, 3, 10))


def test_weekday_of_uses_sunday_first_names() -> None:
    assert WEEKDAYS[0] == "sunday"
    assert weekday_of(date(2025, 3, 9)) == "sunday"
    assert weekday_of(date(2025, 3, 10)) == "monday"
    assert weekday_of(date(2025, 3, 15)) == "saturday"


def test_parse_hhmm() -> None:
    assert parse_hhmm("8:05") == (8, 5)
    assert parse_hhmm("23:59") == (23, 59)
    assert parse_hhmm("24:00") is None
    assert parse_hhmm("10:60") is None
    assert parse_hhmm("1000") is None
    assert parse_hhmm(None) is None


def test_at_time_is_local_and_dst_aware() -> None:
    # DST in New York began on 2025-03-09
    before = at_time(date(2025, 3, 8), "10:00", "America/New_York")
    after = at_time(date(2025, 3, 10), "10:00", "America/New_York")
    assert before.utcoffset() == timedelta(hours=-5)
    assert after.utcoffset() == timedelta(hours=-4)
    assert at_time(date(2025, 3, 10), "bogus", "UTC") is None


def test_to_storage_date_uses_local_calendar_day_for_timestamps() -> None:
    # 02:00 UTC on the 11th is still the 10th in New York
    assert to_storage_date("2025-03-11T02:00:00Z", "America/New_York") == datetime(2025, 3, 10, tzinfo=timezone.utc)
    assert to_storage_date("2025-03-10T23:30:00", "America/New_York") == datetime(2025, 3, 10, tzinfo=timezone.utc)


def test_to_storage_date_keeps_stored_form_stable() -> None:
    assert to_storage_date("2025-03-10T00:00:00Z", "America/New_York") == datetime(2025, 3, 10, tzinfo=timezone.utc)
    assert to_storage_date("2025-03-10", "Asia/Tokyo") == datetime(2025, 3, 10, tzinfo=timezone.utc)
    assert to_storage_date(None) is None
    assert to_storage_date("") is None


def test_parse_timestamp_reads_naive_values_as_local() -> None:
    dt = parse_timestamp("2025-03-10T09:30:00", "Asia/Tokyo")
    assert dt.utcoffset() == timedelta(hours=9)
    assert parse_timestamp("2025-03-10T09:30:00+00:00", "Asia/Tokyo").utcoffset() == timedelta(0)
    with pytest.raises(InvalidDate):
        parse_timestamp("next tuesday")


def test_unknown_timezone_falls_back_to_utc() -> None:
    w = normalize("2025-03-10", "Mars/Olympus_Mons")
    assert w.local_start.utcoffset() == timedelta(0)
