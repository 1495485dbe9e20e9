#!/usr/bin/env python3
"""
User Files API Entry Point

Builds the application from environment settings and serves it with uvicorn.

Usage:
    # Run with uvicorn directly
    uvicorn main:app --host 0.0.0.0 --port 8000 --reload

    # Run as Python script
    python main.py
"""

import uvicorn

from user_files.config import get_settings
from user_files.main import create_app
from user_files.utils.logger import setup_logging


settings = get_settings()

setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

app = create_app(settings)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        log_config=None,
        reload=not settings.is_production,
    )
