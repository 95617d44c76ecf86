"""
Input validation for task fields. Pure functions: each returns the cleaned value or raises
a TaskValidationError subclass. Called before a task is created or updated.
"""
from __future__ import annotations

import re
from typing import Any

from date_utils import WEEKDAYS, parse_hhmm
from errors import InvalidRecurrence, InvalidSchedule, TaskValidationError
from models import RECURRENCE_TYPES, SUB_TASK_PRIORITIES

_TIME_FORMAT = re.compile(r"^\d{1,2}:\d{2}$")


def _is_time(value: Any) -> bool:
    return isinstance(value, str) and bool(_TIME_FORMAT.match(value)) and parse_hhmm(value) is not None


def validate_recurrence(recurrence: dict[str, Any] | None) -> dict[str, Any] | None:
    """
    Check a recurrence definition. Absent recurrence is valid (returns None).
    weekly: days must be a non-empty list of weekday names (any case).
    daily/weekly: time, when given, must be HH:mm.
    Returns the definition with weekday names lowercased.
    """
    if not recurrence:
        return None
    if not isinstance(recurrence, dict):
        raise InvalidRecurrence("Recurrence must be an object")
    rtype = recurrence.get("type") or "none"
    if rtype not in RECURRENCE_TYPES:
        raise InvalidRecurrence(f"Invalid recurrence type (allowed: {', '.join(RECURRENCE_TYPES)})")
    days = recurrence.get("days")
    if rtype == "weekly":
        if not isinstance(days, list) or not days:
            raise InvalidRecurrence("Weekly recurrence requires days array")
        if any(not isinstance(d, str) or d.strip().lower() not in WEEKDAYS for d in days):
            raise InvalidRecurrence("Invalid weekly days (allowed: sunday..saturday)")
    elif days is not None and not isinstance(days, list):
        raise InvalidRecurrence("Recurrence days must be an array")
    rtime = recurrence.get("time") or None
    if rtype in ("daily", "weekly") and rtime is not None and not _is_time(rtime):
        raise InvalidRecurrence(f"Invalid {rtype} recurrence time format (HH:mm)")
    return {
        "type": rtype,
        "time": rtime,
        "days": [str(d).strip().lower() for d in days or []],
    }


def validate_time(value: Any, field: str = "time") -> str | None:
    if value is None or value == "":
        return None
    if not _is_time(value):
        raise TaskValidationError(f"Invalid {field} format (HH:mm)")
    return value.strip()


def _minutes(hhmm: str) -> int:
    hh, mm = parse_hhmm(hhmm)
    return hh * 60 + mm


def validate_schedule(schedule: Any) -> list[dict[str, str]]:
    """Schedule entries need a weekday name and HH:mm start < end on the same day (no overnight spans)."""
    if schedule is None:
        return []
    if not isinstance(schedule, list):
        raise InvalidSchedule("Schedule must be an array of {day, start, end}")
    out: list[dict[str, str]] = []
    for i, entry in enumerate(schedule):
        if not isinstance(entry, dict):
            raise InvalidSchedule(f"Schedule entry {i} must be an object")
        day = str(entry.get("day") or "").strip().lower()
        if day not in WEEKDAYS:
            raise InvalidSchedule(f"Schedule entry {i}: invalid day {entry.get('day')!r}")
        start, end = entry.get("start"), entry.get("end")
        if not _is_time(start) or not _is_time(end):
            raise InvalidSchedule(f"Schedule entry {i}: start and end must be HH:mm")
        if _minutes(start) >= _minutes(end):
            raise InvalidSchedule(f"Schedule entry {i}: start must be before end")
        out.append({"day": day, "start": start.strip(), "end": end.strip()})
    return out


def validate_choice(value: Any, allowed: tuple[str, ...], field: str) -> str:
    if value not in allowed:
        raise TaskValidationError(f"{field} must be one of {', '.join(allowed)}")
    return value


def validate_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise TaskValidationError("Title required")
    return title.strip()


def validate_minutes(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise TaskValidationError(f"{field} must be a non-negative integer")
    return value


def validate_tags(tags: Any) -> list[str]:
    """Tags are stored lowercase and deduplicated, first spelling wins."""
    if tags is None:
        return []
    if not isinstance(tags, list):
        raise TaskValidationError("tags must be an array of strings")
    seen: set[str] = set()
    out: list[str] = []
    for t in tags:
        k = str(t).strip().lower()
        if k and k not in seen:
            seen.add(k)
            out.append(k)
    return out


def validate_sub_tasks(sub_tasks: Any) -> list[dict[str, Any]]:
    """
    Checklist items under a task. Each needs a title; estimateMin is optional minutes and
    priority is low/medium/high. An item's id, when given, ties it to a stored sub-task.
    """
    if sub_tasks is None:
        return []
    if not isinstance(sub_tasks, list):
        raise TaskValidationError("subTasks must be an array")
    out: list[dict[str, Any]] = []
    for i, item in enumerate(sub_tasks):
        if not isinstance(item, dict):
            raise TaskValidationError(f"Sub-task {i} must be an object")
        title = item.get("title")
        if not isinstance(title, str) or not title.strip():
            raise TaskValidationError(f"Sub-task {i}: title required")
        completed = item.get("completed", False)
        if not isinstance(completed, bool):
            raise TaskValidationError(f"Sub-task {i}: completed must be a boolean")
        estimate = item.get("estimateMin", item.get("estimate_min"))
        out.append({
            "id": str(item["id"]) if item.get("id") else None,
            "title": title.strip(),
            "description": item.get("description") or None,
            "completed": completed,
            "estimate_min": validate_minutes(estimate, f"sub-task {i} estimateMin"),
            "priority": validate_choice(item.get("priority") or "medium", SUB_TASK_PRIORITIES, f"sub-task {i} priority"),
        })
    return out
