# ruff: noqa: INP001
"""Pytest configuration shared across tests."""

import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import config  # noqa: E402


@pytest.fixture
def configure(tmp_path, monkeypatch):
    """
    Point configuration at a fresh SQLite file under tmp_path (timezone UTC).
    Returns a callable to rewrite settings, e.g. configure(user_timezone="Asia/Tokyo").
    """
    path = tmp_path / "config.json"
    monkeypatch.setattr(config, "CONFIG_PATH", path)

    def _write(**overrides):
        data = {"database_path": str(tmp_path / "daybook-test.db"), "user_timezone": "UTC"}
        data.update(overrides)
        path.write_text(json.dumps(data))
        return config.load()

    _write()
    return _write
