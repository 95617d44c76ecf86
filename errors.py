"""
Error taxonomy for the task service. Each error carries the HTTP status the API layer returns for it.
Validation errors are also ValueErrors so callers can treat them as bad input.
"""
from __future__ import annotations


class TaskError(Exception):
    """Base for all expected task-service failures."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TaskValidationError(TaskError, ValueError):
    status_code = 400


class InvalidDate(TaskValidationError):
    pass


class InvalidRecurrence(TaskValidationError):
    pass


class InvalidSchedule(TaskValidationError):
    pass


class NotFound(TaskError):
    status_code = 404


class TaskNotFound(NotFound):
    def __init__(self, message: str = "Task not found") -> None:
        super().__init__(message)


class CompletionNotFound(NotFound):
    def __init__(self, message: str = "No completion recorded for this date") -> None:
        super().__init__(message)


class CategoryNotFound(NotFound):
    def __init__(self, message: str = "Category not found") -> None:
        super().__init__(message)


class Conflict(TaskError):
    status_code = 409


class AlreadyCompleted(Conflict):
    def __init__(self, message: str = "Task already completed") -> None:
        super().__init__(message)


class DuplicateCompletion(Conflict):
    def __init__(self, message: str = "Already completed for this date") -> None:
        super().__init__(message)


class Locked(TaskError):
    """Edit/delete refused: task is completed or its day has passed."""

    status_code = 403
