# ruff: noqa

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from date_utils import weekday_of
from errors import InvalidDate
from models import parse_task
from occurrences import resolve_day, resolve_range

MONDAY = date(2025, 3, 10)
TUESDAY = date(2025, 3, 11)


def _task(task_type: str, task_id: str | None = None, **fields):
    return parse_task({
        "id": task_id or f"t-{task_type}",
        "user_id": "u1",
        "title": fields.pop("title", task_type),
        "type": task_type,
        **fields,
    })


def _school(**kw):
    return _task(
        "schedule-block",
        kw.pop("task_id", "block"),
        schedule=kw.pop("schedule", [{"day": "monday", "start": "08:00", "end": "14:00"}]),
        **kw,
    )


def _daily(hhmm: str | None = "10:00", task_id: str = "daily", **kw):
    return _task("recurring", task_id, recurrence={"type": "daily", "time": hhmm}, **kw)


def _clock(dt: datetime | None) -> str | None:
    return dt.strftime("%H:%M") if dt else None


def test_block_and_daily_reminder_on_monday() -> None:
    view = resolve_day([_school(), _daily()], MONDAY)
    assert view.date == "2025-03-10"
    assert len(view.schedule_blocks) == 1
    block = view.schedule_blocks[0]
    assert (_clock(block.start), _clock(block.end)) == ("08:00", "14:00")
    assert len(view.occurrences) == 1
    occ = view.occurrences[0]
    assert _clock(occ.occurrence_time) == "10:00"
    assert occ.blocked is True
    assert occ.blocked_by.task_id == "block"
    assert occ.blocked_by.start == block.start


def test_block_and_daily_reminder_on_tuesday() -> None:
    view = resolve_day([_school(), _daily()], TUESDAY)
    assert view.schedule_blocks == []
    assert len(view.occurrences) == 1
    assert view.occurrences[0].blocked is False
    assert view.occurrences[0].blocked_by is None


@pytest.mark.parametrize("offset_days", range(7))
def test_block_present_iff_weekday_matches(offset_days: int) -> None:
    day = MONDAY + timedelta(days=offset_days)
    view = resolve_day([_school(schedule=[{"day": "friday", "start": "09:00", "end": "10:00"}])], day)
    assert bool(view.schedule_blocks) == (weekday_of(day) == "friday")


@pytest.mark.parametrize("offset_days", range(7))
def test_weekly_recurrence_gated_on_weekday(offset_days: int) -> None:
    day = MONDAY + timedelta(days=offset_days)
    task = _task("recurring", recurrence={"type": "weekly", "days": ["Monday", "WEDNESDAY"], "time": "18:00"})
    view = resolve_day([task], day)
    assert bool(view.occurrences) == (weekday_of(day) in ("monday", "wednesday"))


def test_recurrence_time_falls_back_to_task_time() -> None:
    view = resolve_day([_daily(None, time="06:45")], MONDAY)
    assert _clock(view.occurrences[0].occurrence_time) == "06:45"


def test_recurring_without_any_time_produces_nothing() -> None:
    assert resolve_day([_daily(None)], MONDAY).occurrences == []
    weekly = _task("recurring", recurrence={"type": "weekly", "days": ["monday"]})
    assert resolve_day([weekly], MONDAY).occurrences == []


def test_recurrence_none_and_custom_produce_nothing() -> None:
    tasks = [
        _task("recurring", "a", recurrence={"type": "none", "time": "09:00"}),
        _task("recurring", "b", recurrence={"type": "custom", "time": "09:00"}),
        _task("recurring", "c"),
    ]
    assert resolve_day(tasks, MONDAY).occurrences == []


def test_reminder_with_time_recurs_every_day() -> None:
    task = _task("reminder", time="21:00", date="2025-01-01T00:00:00Z")
    for day in (MONDAY, TUESDAY, date(2030, 1, 1)):
        occs = resolve_day([task], day).occurrences
        assert [_clock(o.occurrence_time) for o in occs] == ["21:00"]


def test_reminder_on_its_date_only() -> None:
    task = _task("reminder", date="2025-03-10T00:00:00Z")
    monday = resolve_day([task], MONDAY).occurrences
    assert len(monday) == 1
    assert monday[0].occurrence_time == datetime(2025, 3, 10, tzinfo=timezone.utc)
    assert resolve_day([task], TUESDAY).occurrences == []


def test_reminder_prefers_start_time() -> None:
    task = _task("reminder", date="2025-03-10T00:00:00Z", start_time="2025-03-10T16:30:00Z")
    assert _clock(resolve_day([task], MONDAY).occurrences[0].occurrence_time) == "16:30"


def test_reminder_without_date_or_time_floats() -> None:
    occs = resolve_day([_task("reminder")], MONDAY).occurrences
    assert len(occs) == 1
    assert occs[0].occurrence_time is None


def test_one_time_on_date_uses_start_time_else_start_of_day() -> None:
    plain = _task("one-time", "a", date="2025-03-10T00:00:00Z")
    timed = _task("one-time", "b", date="2025-03-10T00:00:00Z", start_time="2025-03-10T12:15:00Z")
    occs = resolve_day([plain, timed], MONDAY).occurrences
    assert [(o.task_id, _clock(o.occurrence_time)) for o in occs] == [("a", "00:00"), ("b", "12:15")]
    assert resolve_day([plain, timed], TUESDAY).occurrences == []


@pytest.mark.parametrize("day", [MONDAY, TUESDAY, date(1999, 12, 31), date(2040, 2, 29)])
def test_undated_one_time_task_floats_on_every_date(day: date) -> None:
    occs = resolve_day([_task("one-time")], day).occurrences
    assert len(occs) == 1
    assert occs[0].occurrence_time is None
    assert occs[0].blocked is False


def test_undated_one_time_task_with_time_is_not_shown() -> None:
    assert resolve_day([_task("one-time", time="09:00")], MONDAY).occurrences == []


def test_one_time_date_matches_calendar_day_in_any_zone() -> None:
    task = _task("one-time", date="2025-03-10T00:00:00Z")
    for tz_name in ("Pacific/Pago_Pago", "UTC", "Asia/Tokyo"):
        assert len(resolve_day([task], MONDAY, tz_name).occurrences) == 1
        assert resolve_day([task], TUESDAY, tz_name).occurrences == []


@pytest.mark.parametrize(
    ("hhmm", "blocked"),
    [("07:59", False), ("08:00", True), ("11:00", True), ("14:00", True), ("14:01", False)],
)
def test_blocking_bounds_are_inclusive(hhmm: str, blocked: bool) -> None:
    view = resolve_day([_school(), _daily(hhmm)], MONDAY)
    assert view.occurrences[0].blocked is blocked


def test_first_block_in_start_order_wins() -> None:
    late_long = _school(task_id="a-work", schedule=[{"day": "monday", "start": "09:00", "end": "11:00"}])
    early = _school(task_id="z-school", schedule=[{"day": "monday", "start": "08:00", "end": "12:00"}])
    view = resolve_day([late_long, early, _daily("10:00")], MONDAY)
    assert [b.task_id for b in view.schedule_blocks] == ["z-school", "a-work"]
    assert view.occurrences[0].blocked_by.task_id == "z-school"


def test_equal_start_blocks_tie_break_on_end_then_task_id() -> None:
    b1 = _school(task_id="b", schedule=[{"day": "monday", "start": "08:00", "end": "10:00"}])
    a1 = _school(task_id="a", schedule=[{"day": "monday", "start": "08:00", "end": "10:00"}])
    longer = _school(task_id="0", schedule=[{"day": "monday", "start": "08:00", "end": "11:00"}])
    view = resolve_day([b1, longer, a1, _daily("09:00")], MONDAY)
    assert [b.task_id for b in view.schedule_blocks] == ["a", "b", "0"]
    assert view.occurrences[0].blocked_by.task_id == "a"


def test_multiple_entries_same_day_are_all_emitted() -> None:
    split_shift = _school(schedule=[
        {"day": "monday", "start": "13:00", "end": "17:00"},
        {"day": "monday", "start": "06:00", "end": "10:00"},
        {"day": "tuesday", "start": "06:00", "end": "10:00"},
    ])
    view = resolve_day([split_shift], MONDAY)
    assert [_clock(b.start) for b in view.schedule_blocks] == ["06:00", "13:00"]


def test_occurrences_sort_by_time_then_task_id_with_floating_last() -> None:
    tasks = [
        _task("one-time", "float-b"),
        _daily("09:00", task_id="late"),
        _task("one-time", "float-a"),
        _daily("07:00", task_id="early-b"),
        _daily("07:00", task_id="early-a"),
    ]
    occs = resolve_day(tasks, MONDAY).occurrences
    assert [o.task_id for o in occs] == ["early-a", "early-b", "late", "float-a", "float-b"]


def test_occurrence_times_are_local_to_configured_zone() -> None:
    occ = resolve_day([_daily("10:00")], MONDAY, "America/New_York").occurrences[0]
    assert occ.occurrence_time.utcoffset() == timedelta(hours=-4)
    assert occ.occurrence_time.astimezone(timezone.utc).hour == 14


def test_category_and_raw_task_are_carried() -> None:
    cat = {"id": "c1", "user_id": "u1", "name": "School"}
    view = resolve_day([_school(category_id="c1", category=cat)], MONDAY)
    block = view.schedule_blocks[0]
    assert block.category.name == "School"
    assert block.raw_task.id == "block"


def test_day_view_serializes_with_camel_case_keys() -> None:
    data = resolve_day([_school(), _daily()], MONDAY).model_dump(mode="json", by_alias=True)
    assert set(data) == {"date", "scheduleBlocks", "occurrences"}
    occ = data["occurrences"][0]
    assert occ["taskId"] == "daily"
    assert occ["taskType"] == "recurring"
    assert occ["occurrenceTime"].startswith("2025-03-10T10:00:00")
    assert occ["blockedBy"]["taskId"] == "block"
    assert occ["rawTask"]["recurrence"]["type"] == "daily"


def test_resolve_day_rejects_malformed_target() -> None:
    with pytest.raises(InvalidDate):
        resolve_day([], "10/03/2025")


def test_range_keeps_definitions_and_dated_tasks_in_window() -> None:
    tasks = [
        _task("one-time", "inside", date="2025-03-12T00:00:00Z"),
        _task("one-time", "first-day", date="2025-03-10T00:00:00Z"),
        _task("one-time", "last-day", date="2025-03-16T00:00:00Z"),
        _task("one-time", "before", date="2025-03-09T00:00:00Z"),
        _task("reminder", "after", date="2025-03-17T00:00:00Z"),
        _task("reminder", "floating"),
        _task("one-time", "undated"),
        _daily(task_id="pattern"),
        _school(task_id="block"),
    ]
    ids = [t.id for t in resolve_range(tasks, "2025-03-10", "2025-03-16")]
    assert ids == ["inside", "first-day", "last-day", "floating", "undated", "pattern", "block"]


def test_range_single_day_and_errors() -> None:
    task = _task("one-time", date="2025-03-10T00:00:00Z")
    assert len(resolve_range([task], "2025-03-10", "2025-03-10")) == 1
    with pytest.raises(InvalidDate):
        resolve_range([task], "2025-03-10", "not-a-date")


def test_reversed_range_keeps_only_undated_definitions() -> None:
    tasks = [
        _task("one-time", "dated", date="2025-03-10T00:00:00Z"),
        _task("reminder", "floating"),
        _daily(task_id="r"),
        _school(task_id="block"),
    ]
    ids = [t.id for t in resolve_range(tasks, "2025-03-11", "2025-03-10")]
    assert ids == ["floating", "r", "block"]
    assert [t.id for t in resolve_range([_daily(task_id="r")], "2025-03-11", "2025-03-10")] == ["r"]


def test_recurring_definitions_are_not_expanded_in_range() -> None:
    tasks = resolve_range([_daily()], "2025-03-01", "2025-03-31")
    assert len(tasks) == 1
