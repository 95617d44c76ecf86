"""
Typed views of stored tasks and of resolved day views.

A task is a tagged variant on ``type``: each variant carries only the fields that type uses.
All models serialize with camelCase keys and accept either camelCase or snake_case on input.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

TASK_TYPES = ("one-time", "reminder", "recurring", "schedule-block")
PRIORITIES = ("low", "medium", "high", "critical")
SUB_TASK_PRIORITIES = ("low", "medium", "high")
STATUSES = ("pending", "in-progress", "completed", "archived")
RECURRENCE_TYPES = ("none", "daily", "weekly", "custom")


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Recurrence(ApiModel):
    type: Literal["none", "daily", "weekly", "custom"] = "none"
    time: str | None = None
    days: list[str] = Field(default_factory=list)


class ScheduleEntry(ApiModel):
    day: str
    start: str
    end: str


class Completion(ApiModel):
    date: datetime


class SubTask(ApiModel):
    id: str
    title: str
    description: str | None = None
    completed: bool = False
    estimate_min: int | None = None
    priority: Literal["low", "medium", "high"] = "medium"
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Category(ApiModel):
    id: str
    user_id: str
    name: str
    icon: str | None = None
    color: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TaskBase(ApiModel):
    id: str
    user_id: str
    title: str
    description: str | None = None
    priority: Literal["low", "medium", "high", "critical"] = "medium"
    tags: list[str] = Field(default_factory=list)
    category_id: str | None = None
    category: Category | None = None
    completed: bool = False
    status: Literal["pending", "in-progress", "completed", "archived"] = "pending"
    completions: list[Completion] = Field(default_factory=list)
    estimated_minutes: int | None = None
    actual_minutes: int | None = None
    created_by_ai: bool = Field(default=False, alias="createdByAI")
    sub_tasks: list[SubTask] = Field(default_factory=list)
    # Client-side notification bookkeeping; not used for occurrences
    reminder_at: datetime | None = None
    notification_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OneTimeTask(TaskBase):
    type: Literal["one-time"] = "one-time"
    date: datetime | None = None
    # Only consulted to decide whether an undated task is floating
    time: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


class ReminderTask(TaskBase):
    type: Literal["reminder"] = "reminder"
    date: datetime | None = None
    time: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


class RecurringTask(TaskBase):
    type: Literal["recurring"] = "recurring"
    time: str | None = None
    recurrence: Recurrence | None = None


class ScheduleBlockTask(TaskBase):
    type: Literal["schedule-block"] = "schedule-block"
    schedule: list[ScheduleEntry] = Field(default_factory=list)


Task = Annotated[
    Union[OneTimeTask, ReminderTask, RecurringTask, ScheduleBlockTask],
    Field(discriminator="type"),
]

_TASK_ADAPTER: TypeAdapter[Task] = TypeAdapter(Task)


def parse_task(data: dict[str, Any]) -> Task:
    """Build the variant for data["type"]; fields irrelevant to that type are dropped."""
    return _TASK_ADAPTER.validate_python(data)


class BlockRef(ApiModel):
    task_id: str
    title: str
    start: datetime
    end: datetime


class ScheduleBlock(ApiModel):
    task_id: str
    title: str
    start: datetime
    end: datetime
    category: Category | None = None
    raw_task: Task


class Occurrence(ApiModel):
    task_id: str
    title: str
    task_type: str
    occurrence_time: datetime | None = None
    category: Category | None = None
    raw_task: Task
    blocked: bool = False
    blocked_by: BlockRef | None = None


class DayView(ApiModel):
    date: str
    schedule_blocks: list[ScheduleBlock] = Field(default_factory=list)
    occurrences: list[Occurrence] = Field(default_factory=list)
