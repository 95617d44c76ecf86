"""HTTP API for daybook: tasks, day views, completions and categories."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_snake

import category_service
import task_service
from config import load as load_config
from date_utils import to_utc_iso
from errors import TaskError, TaskNotFound

app = FastAPI(title="Daybook", version="1.0")
logger = logging.getLogger("daybook.api")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """When config.debug is True, log API request method and path."""
    debug = load_config().debug
    if debug:
        qs = request.url.query
        logger.warning("[API] %s %s%s", request.method, request.url.path, "?" + qs if qs else "")
    response = await call_next(request)
    if debug:
        logger.warning("[API] %s %s -> %s", request.method, request.url.path, response.status_code)
    return response


@app.exception_handler(TaskError)
async def task_error_handler(request: Request, exc: TaskError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query parameters are bad input (400), same shape as TaskValidationError."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"detail": "; ".join(parts) or "Invalid request"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("[API] %s %s failed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def current_user(
    x_user_id: str | None = Header(None, alias="X-User-Id"),
    x_api_key: str | None = Header(None, alias="X-API-Key"),
) -> str:
    """
    Dependency: the caller's user id, set by the auth layer in front of this service.
    When an API key is configured, X-API-Key must match it. 401 otherwise.
    """
    key = (load_config().api_key or "").strip()
    if key and (not x_api_key or x_api_key.strip() != key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key. Use X-API-Key header.")
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id


def _fields(body: dict[str, Any]) -> dict[str, Any]:
    """Request bodies may use camelCase (startTime, categoryId) or snake_case keys."""
    out = {to_snake(k): v for k, v in body.items()}
    if "category" in out and "category_id" not in out and not isinstance(out["category"], dict):
        out["category_id"] = out.pop("category")
    return out


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# --- Tasks ---


@app.get("/api/tasks")
def api_list_tasks(date: str | None = None, user_id: str = Depends(current_user)):
    return task_service.list_tasks(user_id, date)


@app.post("/api/tasks", status_code=201)
def api_create_task(body: dict, user_id: str = Depends(current_user)):
    fields = _fields(body)
    fields.pop("user_id", None)
    title = fields.pop("title", None)
    return task_service.create_task(user_id, title, **fields)


@app.get("/api/tasks/today")
def api_day_view(date: str | None = None, user_id: str = Depends(current_user)):
    """Schedule blocks and occurrences for ?date=YYYY-MM-DD (default today)."""
    return task_service.occurrences_for_date(user_id, date)


@app.get("/api/tasks/range")
def api_range(start: str | None = None, end: str | None = None, user_id: str = Depends(current_user)):
    """Task definitions relevant to ?start=&end= (YYYY-MM-DD, inclusive)."""
    tasks = task_service.tasks_in_range(user_id, start, end)
    return {"count": len(tasks), "data": tasks}


@app.post("/api/tasks/batch")
def api_create_suggested(body: dict, user_id: str = Depends(current_user)):
    """Commit suggested tasks: {"tasks": [{title, description, priority, relativeDayOffset, time, tags}]}."""
    created, errors = task_service.create_suggested_tasks(user_id, body.get("tasks"))
    out: dict[str, Any] = {
        "createdCount": len(created),
        "created": [{"id": t.id, "title": t.title, "date": to_utc_iso(t.date)} for t in created],
    }
    if errors:
        out["errors"] = errors
        out["message"] = f"Created {len(created)} tasks, {len(errors)} failed"
    else:
        out["message"] = f"Successfully created {len(created)} tasks"
    return out


@app.get("/api/tasks/{task_id}")
def api_get_task(task_id: str, user_id: str = Depends(current_user)):
    t = task_service.get_task(user_id, task_id)
    if t is None:
        raise TaskNotFound()
    return t


@app.put("/api/tasks/{task_id}")
def api_update_task(task_id: str, body: dict, user_id: str = Depends(current_user)):
    return task_service.update_task(user_id, task_id, _fields(body))


@app.delete("/api/tasks/{task_id}")
def api_delete_task(task_id: str, user_id: str = Depends(current_user)):
    task_service.delete_task(user_id, task_id)
    return {"status": "deleted"}


@app.patch("/api/tasks/{task_id}/complete")
def api_complete_task(task_id: str, date: str | None = None, user_id: str = Depends(current_user)):
    """Global completion, or completion for ?date=YYYY-MM-DD."""
    task = task_service.complete_task(user_id, task_id, date)
    return {"data": task, "completedFor": date}


@app.patch("/api/tasks/{task_id}/uncomplete")
def api_uncomplete_task(task_id: str, date: str | None = None, user_id: str = Depends(current_user)):
    task = task_service.uncomplete_task(user_id, task_id, date)
    return {"data": task, "uncompletedFor": date}


@app.get("/api/tasks/{task_id}/completed")
def api_completion_status(task_id: str, date: str | None = None, user_id: str = Depends(current_user)):
    return task_service.completion_status(user_id, task_id, date)


@app.get("/api/tasks/{task_id}/history")
def api_task_history(task_id: str, limit: int = 100, user_id: str = Depends(current_user)):
    return task_service.get_task_history(user_id, task_id, limit=min(limit, 500))


# --- Categories ---


@app.get("/api/categories")
def api_list_categories(user_id: str = Depends(current_user)):
    return category_service.list_categories(user_id)


@app.post("/api/categories", status_code=201)
def api_create_category(body: dict, user_id: str = Depends(current_user)):
    return category_service.create_category(
        user_id,
        body.get("name"),
        icon=body.get("icon"),
        color=body.get("color"),
    )


@app.delete("/api/categories/{category_id}")
def api_delete_category(category_id: str, user_id: str = Depends(current_user)):
    category_service.delete_category(user_id, category_id)
    return {"status": "deleted"}
