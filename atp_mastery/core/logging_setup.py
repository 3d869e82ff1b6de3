"""Loguru sink configuration for entry points."""

from __future__ import annotations

import sys

from loguru import logger

from config import Settings, get_settings


def configure_logging(settings: Settings | None = None, level: str | None = None) -> None:
    """
    Install stderr (and optional file) sinks.

    Library modules never call this; only the CLI and host applications do.
    """
    settings = settings or get_settings()

    logger.remove()
    logger.add(
        sys.stderr,
        level=level or settings.log_level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {name} - <level>{message}</level>",
    )

    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level,
            rotation="10 MB",
            retention="14 days",
            enqueue=True,
        )
