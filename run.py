#!/usr/bin/env python3
"""
Main entrypoint: bootstrap the database and serve the API.
Run with: python run.py
Or: uvicorn web_app:app --port 8081
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

# Ensure app loggers (daybook.api, task_service) emit to the same stream as uvicorn
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,
)

# Project root
ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(ROOT))

from config import load as load_config
from database import init_database

logger = logging.getLogger("daybook")


def main() -> None:
    db_path = init_database()
    config = load_config()
    logger.info("Database ready at %s; local timezone %s", db_path, config.user_timezone)

    # Run web app (blocking)
    import uvicorn
    uvicorn.run(
        "web_app:app",
        host="0.0.0.0",
        port=config.web_ui_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
