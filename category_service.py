"""
Category service: CRUD for a user's categories. Tasks hold a weak reference (category_id)
that is cleared when the category is deleted.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from ulid import ULID

from database import get_connection
from errors import CategoryNotFound, TaskValidationError
from models import Category

logger = logging.getLogger("category_service")


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def create_category(
    user_id: str,
    name: str | None,
    *,
    icon: str | None = None,
    color: str | None = None,
) -> Category:
    """Create a category. icon is an emoji or icon name, color a hex string; both optional."""
    name = (name or "").strip()
    if not name:
        raise TaskValidationError("Category name required")
    cid = str(ULID())
    now = _now_iso()
    conn = get_connection()
    try:
        conn.execute(
            """INSERT INTO categories (id, user_id, name, icon, color, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (cid, user_id, name, icon or None, color or None, now, now),
        )
        conn.commit()
    finally:
        conn.close()
    return get_category(user_id, cid)


def list_categories(user_id: str) -> list[Category]:
    """All of the user's categories, by name."""
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM categories WHERE user_id = ? ORDER BY name, id",
            (user_id,),
        ).fetchall()
        return [Category.model_validate(dict(r)) for r in rows]
    finally:
        conn.close()


def get_category(user_id: str, category_id: str) -> Category | None:
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT * FROM categories WHERE id = ? AND user_id = ?",
            (category_id, user_id),
        ).fetchone()
        return Category.model_validate(dict(row)) if row else None
    finally:
        conn.close()


def delete_category(user_id: str, category_id: str) -> None:
    """Delete a category and clear it from the user's tasks. Raises CategoryNotFound."""
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT id FROM categories WHERE id = ? AND user_id = ?",
            (category_id, user_id),
        ).fetchone()
        if not row:
            raise CategoryNotFound()
        cur = conn.execute(
            "UPDATE tasks SET category_id = NULL WHERE category_id = ? AND user_id = ?",
            (category_id, user_id),
        )
        conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))
        conn.commit()
        logger.info("Deleted category %s (cleared from %d tasks)", category_id, cur.rowcount)
    finally:
        conn.close()
