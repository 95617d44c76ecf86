"""
Task Service layer: all database reads and mutations for tasks go through here.
Every operation is scoped by owner; a task owned by someone else is reported as not found.
Day views and range queries load the owner's tasks and hand them to the pure resolver.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timezone
from typing import Any

from ulid import ULID

from config import load as load_config
from database import get_connection
from date_utils import (
    calendar_date,
    normalize,
    offset,
    parse_timestamp,
    to_storage_date,
    to_utc_iso,
    today_local,
)
from errors import (
    AlreadyCompleted,
    CompletionNotFound,
    DuplicateCompletion,
    InvalidDate,
    Locked,
    TaskError,
    TaskNotFound,
    TaskValidationError,
)
from models import PRIORITIES, STATUSES, TASK_TYPES, DayView, Task, parse_task
from occurrences import resolve_day, resolve_range
from validators import (
    validate_choice,
    validate_minutes,
    validate_recurrence,
    validate_schedule,
    validate_sub_tasks,
    validate_tags,
    validate_time,
    validate_title,
)

logger = logging.getLogger("task_service")

MAX_SUGGESTED_TASKS = 20

# Writable columns; anything else in an update payload is ignored
_COLUMNS = (
    "title", "description", "type", "date", "time", "recurrence", "schedule",
    "start_time", "end_time", "category_id", "priority", "status",
    "estimated_minutes", "actual_minutes", "sub_tasks", "reminder_at", "notification_id",
)

_PRIORITY_ORDER = "CASE priority WHEN 'critical' THEN 3 WHEN 'high' THEN 2 WHEN 'medium' THEN 1 ELSE 0 END"


def _new_task_id() -> str:
    return str(ULID())


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _tz() -> str:
    return load_config().user_timezone


def _record_history(conn: sqlite3.Connection, task_id: str, event: str, payload: Any = None) -> None:
    conn.execute(
        "INSERT INTO task_history (task_id, timestamp, event, payload) VALUES (?, ?, ?, ?)",
        (task_id, _now_iso(), event, json.dumps(payload) if payload is not None else None),
    )


def _json_column(task_id: str, key: str, raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning("[task_service] task %s has unreadable %s, ignoring", task_id, key)
        return None


def _task_row_to_dict(conn: sqlite3.Connection, row: Any) -> dict[str, Any]:
    d = dict(row)
    for key in ("recurrence", "schedule", "sub_tasks"):
        d[key] = _json_column(d["id"], key, d.get(key))
    for key in ("schedule", "sub_tasks"):
        if d[key] is None:
            d[key] = []
    d["completed"] = bool(d.get("completed"))
    d["created_by_ai"] = bool(d.get("created_by_ai"))
    d["tags"] = [r[0] for r in conn.execute("SELECT tag FROM task_tags WHERE task_id = ? ORDER BY tag", (d["id"],))]
    d["completions"] = [
        {"date": r[0]}
        for r in conn.execute("SELECT date FROM task_completions WHERE task_id = ? ORDER BY date", (d["id"],))
    ]
    d["category"] = None
    if d.get("category_id"):
        cat = conn.execute(
            "SELECT * FROM categories WHERE id = ? AND user_id = ?",
            (d["category_id"], d["user_id"]),
        ).fetchone()
        d["category"] = dict(cat) if cat else None
    return d


def _row_to_task(conn: sqlite3.Connection, row: Any) -> Task:
    return parse_task(_task_row_to_dict(conn, row))


def _fetch_owned(conn: sqlite3.Connection, user_id: str, task_id: str) -> sqlite3.Row:
    row = conn.execute("SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)).fetchone()
    if not row:
        raise TaskNotFound()
    return row


def _ensure_category(conn: sqlite3.Connection, user_id: str, category_id: str | None) -> None:
    if not category_id:
        return
    row = conn.execute("SELECT 1 FROM categories WHERE id = ? AND user_id = ?", (category_id, user_id)).fetchone()
    if not row:
        raise TaskValidationError(f"Unknown category {category_id}")


def _ensure_unlocked(row: sqlite3.Row, action: str, tz_name: str) -> None:
    """Completed tasks, and tasks whose date is before today, are frozen."""
    if row["completed"]:
        raise Locked(f"Completed tasks cannot be {action}")
    if row["date"]:
        task_day = calendar_date(parse_timestamp(row["date"], tz_name))
        if task_day < today_local(tz_name):
            raise Locked(f"Past tasks cannot be {action}")


def _stamp_sub_tasks(items: list[dict[str, Any]], previous: list[Any], now: str) -> list[dict[str, Any]]:
    """Give new sub-tasks an id and timestamps; keep created_at of ones matched by id, bump updated_at on change."""
    known = {p["id"]: p for p in previous if isinstance(p, dict) and p.get("id")}
    out = []
    for item in items:
        prev = known.get(item["id"])
        if prev is None:
            out.append({**item, "id": _new_task_id(), "created_at": now, "updated_at": now})
            continue
        changed = any(prev.get(k) != item[k] for k in ("title", "description", "completed", "estimate_min", "priority"))
        out.append({
            **item,
            "created_at": prev.get("created_at") or now,
            "updated_at": now if changed else prev.get("updated_at") or now,
        })
    return out


def _check_span(start_iso: str | None, end_iso: str | None, tz_name: str) -> None:
    if start_iso and end_iso and parse_timestamp(end_iso, tz_name) < parse_timestamp(start_iso, tz_name):
        raise TaskValidationError("endTime cannot be before startTime")


def _clean_fields(
    fields: dict[str, Any],
    tz_name: str,
    previous_sub_tasks: list[Any] | None = None,
) -> dict[str, Any]:
    """Validate the given task fields and convert them to column values. Only keys present are returned."""
    out: dict[str, Any] = {}
    if "title" in fields:
        out["title"] = validate_title(fields["title"])
    if "description" in fields:
        out["description"] = fields["description"] or None
    if "type" in fields:
        out["type"] = validate_choice(fields["type"] or "one-time", TASK_TYPES, "type")
    if "date" in fields:
        out["date"] = to_utc_iso(to_storage_date(fields["date"], tz_name))
    if "time" in fields:
        out["time"] = validate_time(fields["time"])
    if "recurrence" in fields:
        rec = validate_recurrence(fields["recurrence"])
        out["recurrence"] = json.dumps(rec) if rec else None
    if "schedule" in fields:
        sched = validate_schedule(fields["schedule"])
        out["schedule"] = json.dumps(sched) if sched else None
    for key in ("start_time", "end_time", "reminder_at"):
        if key in fields:
            out[key] = to_utc_iso(parse_timestamp(fields[key], tz_name))
    if "category_id" in fields:
        out["category_id"] = fields["category_id"] or None
    if "priority" in fields:
        out["priority"] = validate_choice(fields["priority"] or "medium", PRIORITIES, "priority")
    if "status" in fields:
        out["status"] = validate_choice(fields["status"] or "pending", STATUSES, "status")
    for key in ("estimated_minutes", "actual_minutes"):
        if key in fields:
            out[key] = validate_minutes(fields[key], key)
    if "sub_tasks" in fields:
        items = _stamp_sub_tasks(validate_sub_tasks(fields["sub_tasks"]), previous_sub_tasks or [], _now_iso())
        out["sub_tasks"] = json.dumps(items) if items else None
    if "notification_id" in fields:
        nid = fields["notification_id"]
        if nid is not None and not isinstance(nid, str):
            raise TaskValidationError("notificationId must be a string")
        out["notification_id"] = nid or None
    return out


def _replace_tags(conn: sqlite3.Connection, task_id: str, tags: list[str]) -> None:
    conn.execute("DELETE FROM task_tags WHERE task_id = ?", (task_id,))
    for tag in tags:
        conn.execute("INSERT OR IGNORE INTO task_tags (task_id, tag) VALUES (?, ?)", (task_id, tag))


def _load_tasks(conn: sqlite3.Connection, user_id: str) -> list[Task]:
    rows = conn.execute("SELECT * FROM tasks WHERE user_id = ? ORDER BY created_at, id", (user_id,)).fetchall()
    return [_row_to_task(conn, r) for r in rows]


def create_task(user_id: str, title: str | None, **fields: Any) -> Task:
    """
    Create a task owned by user_id. fields are snake_case task attributes (type, date, time,
    recurrence, schedule, start_time, end_time, category_id, priority, tags, sub_tasks,
    reminder_at, notification_id, ...).
    Status always starts as pending and completed as false.
    """
    tz_name = _tz()
    fields = {k: v for k, v in fields.items() if k in _COLUMNS or k in ("tags", "created_by_ai")}
    fields.pop("status", None)
    cols = _clean_fields({**fields, "title": title}, tz_name)
    _check_span(cols.get("start_time"), cols.get("end_time"), tz_name)
    cols.setdefault("type", "one-time")
    cols.setdefault("priority", "medium")
    cols["status"] = "pending"
    tags = validate_tags(fields.get("tags"))
    tid = _new_task_id()
    now = _now_iso()
    conn = get_connection()
    try:
        _ensure_category(conn, user_id, cols.get("category_id"))
        names = ["id", "user_id", *cols.keys(), "completed", "created_by_ai", "created_at", "updated_at"]
        values = [tid, user_id, *cols.values(), 0, 1 if fields.get("created_by_ai") else 0, now, now]
        conn.execute(
            f"INSERT INTO tasks ({', '.join(names)}) VALUES ({', '.join('?' * len(names))})",
            values,
        )
        _replace_tags(conn, tid, tags)
        _record_history(conn, tid, "created", {"title": cols["title"], "type": cols["type"]})
        conn.commit()
        logger.info("[task_service] created %s task %s for user %s", cols["type"], tid, user_id)
        return _row_to_task(conn, _fetch_owned(conn, user_id, tid))
    finally:
        conn.close()


def get_task(user_id: str, task_id: str) -> Task | None:
    """Return one task by id, or None if it does not exist for this user."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)).fetchone()
        return _row_to_task(conn, row) if row else None
    finally:
        conn.close()


def list_tasks(user_id: str, date_str: str | None = None) -> list[Task]:
    """All of the user's tasks, highest priority first, then newest. date_str (YYYY-MM-DD) keeps only tasks dated that day."""
    sql = "SELECT * FROM tasks WHERE user_id = ?"
    params: list[Any] = [user_id]
    if date_str:
        window = normalize(date_str, _tz())
        sql += " AND substr(date, 1, 10) = ?"
        params.append(window.day.isoformat())
    sql += f" ORDER BY {_PRIORITY_ORDER} DESC, created_at DESC, id DESC"
    conn = get_connection()
    try:
        return [_row_to_task(conn, r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def update_task(user_id: str, task_id: str, changes: dict[str, Any]) -> Task:
    """
    Update the given fields (snake_case keys). Raises TaskNotFound, Locked when the task is
    completed or dated before today, and TaskValidationError for bad values.
    Completion is not editable here; use complete_task.
    """
    tz_name = _tz()
    conn = get_connection()
    try:
        row = _fetch_owned(conn, user_id, task_id)
        _ensure_unlocked(row, "edited", tz_name)
        if changes.get("status") == "completed":
            raise TaskValidationError("Use the complete operation to complete a task")
        cols = _clean_fields(
            {k: v for k, v in changes.items() if k in _COLUMNS},
            tz_name,
            previous_sub_tasks=_json_column(task_id, "sub_tasks", row["sub_tasks"]) or [],
        )
        _check_span(
            cols["start_time"] if "start_time" in cols else row["start_time"],
            cols["end_time"] if "end_time" in cols else row["end_time"],
            tz_name,
        )
        if "category_id" in cols:
            _ensure_category(conn, user_id, cols["category_id"])
        now = _now_iso()
        assignments = [f"{name} = ?" for name in cols] + ["updated_at = ?"]
        params = [*cols.values(), now, task_id]
        cur = conn.execute(
            f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ? AND completed = 0",
            params,
        )
        if cur.rowcount == 0:
            raise Locked("Completed tasks cannot be edited")
        if "tags" in changes:
            _replace_tags(conn, task_id, validate_tags(changes["tags"]))
        _record_history(conn, task_id, "updated", {"fields": sorted(cols)})
        conn.commit()
        return _row_to_task(conn, _fetch_owned(conn, user_id, task_id))
    finally:
        conn.close()


def delete_task(user_id: str, task_id: str) -> None:
    """Delete a task with its tags, completions and history. Raises TaskNotFound or Locked."""
    tz_name = _tz()
    conn = get_connection()
    try:
        row = _fetch_owned(conn, user_id, task_id)
        _ensure_unlocked(row, "deleted", tz_name)
        conn.execute("DELETE FROM task_history WHERE task_id = ?", (task_id,))
        conn.execute("DELETE FROM task_tags WHERE task_id = ?", (task_id,))
        conn.execute("DELETE FROM task_completions WHERE task_id = ?", (task_id,))
        cur = conn.execute("DELETE FROM tasks WHERE id = ? AND completed = 0", (task_id,))
        if cur.rowcount == 0:
            conn.rollback()
            raise Locked("Completed tasks cannot be deleted")
        conn.commit()
        logger.info("[task_service] deleted task %s for user %s", task_id, user_id)
    finally:
        conn.close()


def complete_task(user_id: str, task_id: str, date_str: str | None = None) -> Task:
    """
    Without a date: one-shot global completion (sets status completed); AlreadyCompleted if done.
    With a date: record a completion for that calendar date; DuplicateCompletion if one exists.
    The (task_id, date) primary key makes the per-date write atomic under concurrent calls.
    """
    window = normalize(date_str, _tz()) if date_str else None
    conn = get_connection()
    try:
        _fetch_owned(conn, user_id, task_id)
        now = _now_iso()
        if window is None:
            cur = conn.execute(
                "UPDATE tasks SET completed = 1, status = 'completed', updated_at = ? WHERE id = ? AND completed = 0",
                (now, task_id),
            )
            if cur.rowcount == 0:
                raise AlreadyCompleted()
            _record_history(conn, task_id, "completed", {"completed_at": now})
        else:
            day = window.day.isoformat()
            exists = conn.execute(
                "SELECT 1 FROM task_completions WHERE task_id = ? AND substr(date, 1, 10) = ?",
                (task_id, day),
            ).fetchone()
            if exists:
                raise DuplicateCompletion()
            try:
                conn.execute(
                    "INSERT INTO task_completions (task_id, date, created_at) VALUES (?, ?, ?)",
                    (task_id, to_utc_iso(window.utc_midnight), now),
                )
            except sqlite3.IntegrityError:
                raise DuplicateCompletion() from None
            _record_history(conn, task_id, "completed_for_date", {"date": day})
        conn.commit()
        return _row_to_task(conn, _fetch_owned(conn, user_id, task_id))
    finally:
        conn.close()


def uncomplete_task(user_id: str, task_id: str, date_str: str | None) -> Task:
    """Remove the completion recorded for date_str. InvalidDate if missing/malformed, CompletionNotFound if none."""
    if not date_str:
        raise InvalidDate("date is required (YYYY-MM-DD)")
    window = normalize(date_str, _tz())
    day = window.day.isoformat()
    conn = get_connection()
    try:
        _fetch_owned(conn, user_id, task_id)
        cur = conn.execute(
            "DELETE FROM task_completions WHERE task_id = ? AND substr(date, 1, 10) = ?",
            (task_id, day),
        )
        if cur.rowcount == 0:
            raise CompletionNotFound()
        _record_history(conn, task_id, "uncompleted_for_date", {"date": day})
        conn.commit()
        return _row_to_task(conn, _fetch_owned(conn, user_id, task_id))
    finally:
        conn.close()


def completion_status(user_id: str, task_id: str, date_str: str | None = None) -> dict[str, Any]:
    """Report the global flag and, when date_str is given, whether that date has a completion."""
    window = normalize(date_str, _tz()) if date_str else None
    conn = get_connection()
    try:
        row = _fetch_owned(conn, user_id, task_id)
        for_date = False
        if window is not None:
            for_date = conn.execute(
                "SELECT 1 FROM task_completions WHERE task_id = ? AND substr(date, 1, 10) = ?",
                (task_id, window.day.isoformat()),
            ).fetchone() is not None
        is_global = bool(row["completed"])
        return {
            "global": is_global,
            "date": window.day.isoformat() if window else None,
            "completed": for_date if window else is_global,
        }
    finally:
        conn.close()


def occurrences_for_date(user_id: str, date_str: str | None = None) -> DayView:
    """Day view for date_str (YYYY-MM-DD), default today in the configured timezone."""
    tz_name = _tz()
    target: str | date = date_str or today_local(tz_name)
    window = normalize(target, tz_name)
    conn = get_connection()
    try:
        tasks = _load_tasks(conn, user_id)
    finally:
        conn.close()
    return resolve_day(tasks, window.day, tz_name)


def tasks_in_range(user_id: str, start: str | None, end: str | None) -> list[Task]:
    """Task definitions relevant to [start, end]; InvalidDate if either is missing or malformed."""
    tz_name = _tz()
    first = normalize(start or "", tz_name).day
    last = normalize(end or "", tz_name).day
    conn = get_connection()
    try:
        tasks = _load_tasks(conn, user_id)
    finally:
        conn.close()
    return resolve_range(tasks, first, last, tz_name)


def create_suggested_tasks(user_id: str, suggestions: Any) -> tuple[list[Task], list[dict[str, Any]]]:
    """
    Commit assistant-suggested tasks as one-time tasks. Each suggestion has title, description,
    priority, relativeDayOffset (0 = today), time and tags; its date is today + offset.
    Bad suggestions are collected as errors and do not stop the others.
    """
    if not isinstance(suggestions, list) or not suggestions:
        raise TaskValidationError("Tasks array required")
    if len(suggestions) > MAX_SUGGESTED_TASKS:
        raise TaskValidationError(f"Maximum {MAX_SUGGESTED_TASKS} tasks can be created at once")
    tz_name = _tz()
    created: list[Task] = []
    errors: list[dict[str, Any]] = []
    for item in suggestions:
        if not isinstance(item, dict):
            errors.append({"task": item, "error": "Task must be an object"})
            continue
        try:
            try:
                n = int(item.get("relativeDayOffset", item.get("relative_day_offset")) or 0)
            except (TypeError, ValueError):
                n = 0
            _, midnight = offset(n, tz_name)
            priority = item.get("priority")
            created.append(create_task(
                user_id,
                (item.get("title") or "").strip() or None,
                type="one-time",
                description=(item.get("description") or "").strip(),
                date=to_utc_iso(midnight),
                time=item.get("time") or None,
                priority=priority if priority in PRIORITIES else "medium",
                tags=item.get("tags") if isinstance(item.get("tags"), list) else [],
                category_id=item.get("categoryId", item.get("category_id")),
                created_by_ai=True,
            ))
        except TaskError as e:
            errors.append({"task": item, "error": e.message})
    logger.info("[task_service] committed %d suggested tasks (%d failed) for user %s", len(created), len(errors), user_id)
    return created, errors


def get_task_history(user_id: str, task_id: str, limit: int = 100) -> list[dict[str, Any]]:
    """Return history events for a task (audit)."""
    conn = get_connection()
    try:
        _fetch_owned(conn, user_id, task_id)
        rows = conn.execute(
            "SELECT id, task_id, timestamp, event, payload FROM task_history WHERE task_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?",
            (task_id, limit),
        ).fetchall()
        out = []
        for r in rows:
            d = dict(r)
            if d.get("payload"):
                try:
                    d["payload"] = json.loads(d["payload"])
                except (TypeError, json.JSONDecodeError):
                    logger.debug("[task_service] history %s payload is not JSON, returning raw", d["id"])
            out.append(d)
        return out
    finally:
        conn.close()
