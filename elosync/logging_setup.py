"""Loguru sinks for the CLI and the API service."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from config import Settings, get_settings

_CONSOLE_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"


def configure_logging(settings: Settings | None = None, level: str | None = None) -> None:
    """
    Replace the default loguru sink.

    Adds a stderr sink at the configured level and, when LOG_FILE is set, a
    rotating file sink.
    """
    settings = settings or get_settings()
    level = level or settings.log_level

    logger.remove()
    logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT)

    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.log_file,
            level=level,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )
