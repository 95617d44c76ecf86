"""
SQLite database initialization and connection for Daybook.
Self-bootstrapping: creates DB file, tables, indexes, and constraints on first use.
"""
from __future__ import annotations

import sqlite3
from pathlib import Path

# Default DB path: project directory
_DEFAULT_DB_PATH = Path(__file__).resolve().parent / "daybook.db"

# Wait up to this many seconds for locks (concurrent API requests share the file)
_CONNECT_TIMEOUT = 30.0

_SCHEMA = """
-- Primary table: tasks, owned by exactly one user
-- type decides which of date/time/recurrence/schedule/start_time/end_time are meaningful
-- date: UTC-midnight ISO timestamp (YYYY-MM-DDT00:00:00Z)
-- recurrence, schedule, sub_tasks: JSON or NULL
-- completed: global one-shot flag (0 -> 1, never reset)
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    category_id TEXT,
    title TEXT NOT NULL,
    description TEXT,
    type TEXT NOT NULL CHECK (type IN ('one-time', 'reminder', 'recurring', 'schedule-block')),
    date TEXT,
    time TEXT,
    recurrence TEXT,
    schedule TEXT,
    start_time TEXT,
    end_time TEXT,
    completed INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL CHECK (status IN ('pending', 'in-progress', 'completed', 'archived')),
    priority TEXT NOT NULL CHECK (priority IN ('low', 'medium', 'high', 'critical')),
    estimated_minutes INTEGER,
    actual_minutes INTEGER,
    created_by_ai INTEGER NOT NULL DEFAULT 0,
    sub_tasks TEXT,
    reminder_at TEXT,
    notification_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE SET NULL
);

CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(user_id);
CREATE INDEX IF NOT EXISTS idx_tasks_user_date ON tasks(user_id, date);

-- Task-tag association (tags stored lowercase)
CREATE TABLE IF NOT EXISTS task_tags (
    task_id TEXT NOT NULL,
    tag TEXT NOT NULL,
    PRIMARY KEY (task_id, tag),
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_task_tags_tag ON task_tags(tag);

-- Per-calendar-date completions; the primary key is what makes complete(date) atomic
CREATE TABLE IF NOT EXISTS task_completions (
    task_id TEXT NOT NULL,
    date TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (task_id, date),
    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
);

-- Categories (weak reference from tasks.category_id)
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    icon TEXT,
    color TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_categories_user ON categories(user_id);

-- History log for task events (audit)
CREATE TABLE IF NOT EXISTS task_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    event TEXT NOT NULL,
    payload TEXT
);

CREATE INDEX IF NOT EXISTS idx_task_history_task ON task_history(task_id);
CREATE INDEX IF NOT EXISTS idx_task_history_timestamp ON task_history(timestamp);
"""

# Columns added after the first release: (name, definition)
_ADDED_TASK_COLUMNS = (
    ("sub_tasks", "TEXT"),
    ("reminder_at", "TEXT"),
    ("notification_id", "TEXT"),
)

_initialized: set[Path] = set()


def get_db_path() -> Path:
    """Return the database file path (from config if set)."""
    from config import load as load_config

    path = load_config().database_path
    if path:
        return Path(path)
    return _DEFAULT_DB_PATH


def init_database(path: Path | None = None) -> Path:
    """
    Ensure the database exists and is initialized. Creates file and all tables/indexes.
    Returns the path to the database file.
    """
    db_path = (path or get_db_path()).resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=_CONNECT_TIMEOUT)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(_SCHEMA)
        # Migration: databases created before these columns existed
        for name, definition in _ADDED_TASK_COLUMNS:
            try:
                conn.execute(f"ALTER TABLE tasks ADD COLUMN {name} {definition}")
            except sqlite3.OperationalError as e:
                if "duplicate column" not in str(e).lower():
                    raise
        conn.commit()
    finally:
        conn.close()
    _initialized.add(db_path)
    return db_path


def get_connection(path: Path | None = None) -> sqlite3.Connection:
    """Return a connection to the database, bootstrapping the schema on first use of a path."""
    db_path = (path or get_db_path()).resolve()
    if db_path not in _initialized:
        init_database(db_path)
    conn = sqlite3.connect(str(db_path), timeout=_CONNECT_TIMEOUT)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys = ON")
    conn.row_factory = sqlite3.Row
    return conn


def migrate() -> Path:
    """Run database init. Use this to bootstrap manually: python -m database"""
    return init_database()


if __name__ == "__main__":
    p = migrate()
    print("Database initialized:", p)
