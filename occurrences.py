"""
Occurrence resolution: expand a user's task definitions into what happens on one day.

Pure functions of (tasks, date, timezone); no I/O. Rules per task type:

- schedule-block: every schedule entry for the target weekday becomes a [start, end] block.
- recurring/daily: one occurrence at recurrence.time, falling back to the task's time.
  No resolvable time means no occurrence.
- recurring/weekly: as daily, only when the target weekday is in recurrence.days.
- reminder: with a time, every day at that time; otherwise on its date (at start_time, or the
  start of that day); with neither date nor time, a floating occurrence.
- one-time: on its date (at start_time, or the start of that day); with neither date nor time,
  floating on every day.

Occurrences whose time falls inside a block (inclusive) are marked blocked by the first such
block in block order. Blocks sort by (start, end, task id); occurrences by time, floating
last, then task id. Python's sort is stable, so entries of one task keep emission order.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timezone

from date_utils import DayWindow, at_time, calendar_date, normalize, weekday_of
from models import (
    BlockRef,
    DayView,
    OneTimeTask,
    Occurrence,
    RecurringTask,
    ReminderTask,
    ScheduleBlock,
    ScheduleBlockTask,
    Task,
)

logger = logging.getLogger(__name__)

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def _occurrence(task: Task, when: datetime | None) -> Occurrence:
    return Occurrence(
        task_id=task.id,
        title=task.title,
        task_type=task.type,
        occurrence_time=when,
        category=task.category,
        raw_task=task,
    )


def _on_day(task: OneTimeTask | ReminderTask, window: DayWindow) -> bool:
    return task.date is not None and calendar_date(task.date) == window.day


def schedule_blocks_for(task: Task, window: DayWindow, tz_name: str = "UTC") -> list[ScheduleBlock]:
    if not isinstance(task, ScheduleBlockTask):
        return []
    weekday = weekday_of(window.day)
    out: list[ScheduleBlock] = []
    for entry in task.schedule:
        if entry.day.lower() != weekday:
            continue
        start = at_time(window.day, entry.start, tz_name)
        end = at_time(window.day, entry.end, tz_name)
        if start is None or end is None:
            logger.warning("Skipping malformed schedule entry on task %s: %s", task.id, entry)
            continue
        out.append(ScheduleBlock(
            task_id=task.id,
            title=task.title,
            start=start,
            end=end,
            category=task.category,
            raw_task=task,
        ))
    return out


def occurrences_for(task: Task, window: DayWindow, tz_name: str = "UTC") -> list[Occurrence]:
    if isinstance(task, RecurringTask):
        rec = task.recurrence
        if rec is None or rec.type not in ("daily", "weekly"):
            return []
        if rec.type == "weekly" and weekday_of(window.day) not in {d.lower() for d in rec.days}:
            return []
        when = at_time(window.day, rec.time or task.time, tz_name)
        return [_occurrence(task, when)] if when is not None else []

    if isinstance(task, ReminderTask):
        if task.time:
            when = at_time(window.day, task.time, tz_name)
            if when is None:
                logger.warning("Reminder %s has malformed time %r", task.id, task.time)
                return []
            return [_occurrence(task, when)]
        if task.date is not None:
            if _on_day(task, window):
                return [_occurrence(task, task.start_time or window.local_start)]
            return []
        return [_occurrence(task, None)]

    if isinstance(task, OneTimeTask):
        if task.date is not None:
            if _on_day(task, window):
                return [_occurrence(task, task.start_time or window.local_start)]
            return []
        if not task.time:
            return [_occurrence(task, None)]
    return []


def mark_blocked(occurrences: list[Occurrence], blocks: list[ScheduleBlock]) -> list[Occurrence]:
    """Flag each timed occurrence that lies inside a block; the first containing block wins."""
    for occ in occurrences:
        if occ.occurrence_time is None:
            continue
        for b in blocks:
            if b.start <= occ.occurrence_time <= b.end:
                occ.blocked = True
                occ.blocked_by = BlockRef(task_id=b.task_id, title=b.title, start=b.start, end=b.end)
                break
    return occurrences


def sort_blocks(blocks: list[ScheduleBlock]) -> list[ScheduleBlock]:
    return sorted(blocks, key=lambda b: (b.start, b.end, b.task_id))


def sort_occurrences(occurrences: list[Occurrence]) -> list[Occurrence]:
    return sorted(
        occurrences,
        key=lambda o: (o.occurrence_time is None, o.occurrence_time or _EARLIEST, o.task_id),
    )


def resolve_day(tasks: Iterable[Task], target: str | date, tz_name: str = "UTC") -> DayView:
    """
    Materialize schedule blocks and occurrences for one calendar day.
    target is a YYYY-MM-DD string or a date; raises InvalidDate for malformed strings.
    """
    window = normalize(target, tz_name)
    blocks: list[ScheduleBlock] = []
    occs: list[Occurrence] = []
    for task in tasks:
        blocks.extend(schedule_blocks_for(task, window, tz_name))
        occs.extend(occurrences_for(task, window, tz_name))
    blocks = sort_blocks(blocks)
    mark_blocked(occs, blocks)
    return DayView(
        date=window.day.isoformat(),
        schedule_blocks=blocks,
        occurrences=sort_occurrences(occs),
    )


def resolve_range(tasks: Iterable[Task], start: str | date, end: str | date, tz_name: str = "UTC") -> list[Task]:
    """
    Tasks relevant to [start, end] (inclusive calendar days). Dated one-time/reminder tasks are
    kept when their date is inside the range, undated ones always. Recurring and schedule-block
    tasks are always kept as definitions; their instances are not expanded. A reversed range
    contains no dates, so it yields only the always-kept tasks.
    """
    first = normalize(start, tz_name).day
    last = normalize(end, tz_name).day
    out: list[Task] = []
    for task in tasks:
        if isinstance(task, (OneTimeTask, ReminderTask)) and task.date is not None:
            if not first <= calendar_date(task.date) <= last:
                continue
        out.append(task)
    return out
