"""Configuration load/save for daybook."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

CONFIG_PATH = Path(__file__).resolve().parent / "config.json"


class AppConfig(BaseModel):
    """Persisted application configuration."""

    web_ui_port: int = Field(default=8081, ge=1, le=65535, description="Port for the HTTP API")
    database_path: str = Field(default="", description="Path to SQLite database file; empty = project dir / daybook.db")
    user_timezone: str = Field(default="UTC", description="IANA timezone treated as local time (e.g. America/New_York). Used for day windows and 'today'.")
    api_key: str = Field(default="", description="When set, every API request must send it as X-API-Key")
    debug: bool = Field(default=False, description="Log every API request and response status")

    def to_save_dict(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def load(cls) -> "AppConfig":
        if not CONFIG_PATH.exists():
            return cls()
        raw = json.loads(CONFIG_PATH.read_text())
        return cls.model_validate(raw)

    def save(self) -> None:
        CONFIG_PATH.write_text(json.dumps(self.to_save_dict(), indent=2))


def load() -> AppConfig:
    """Load config from disk. Convenience alias for AppConfig.load()."""
    return AppConfig.load()
