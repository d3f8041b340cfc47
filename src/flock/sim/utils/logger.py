from __future__ import annotations

import sys
from typing import Optional

from loguru import logger


def get_logger(
    name: str = "flock",
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = False,
    rotation: str = "50 MB",
    retention: str = "7 days",
) -> "logger":
    """
    Configure the shared loguru logger and return it.

    Replaces any previously installed sinks with one stderr sink and, when
    ``log_file`` is given, a rotating file sink (JSON lines if ``json_format``).
    Library modules import ``logger`` from loguru directly and only the
    process entry point calls this.
    """
    logger.remove()

    fmt = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        f"<cyan>{name}</cyan>:<cyan>{{function}}</cyan>:<cyan>{{line}}</cyan> | "
        "<level>{message}</level>"
    )
    logger.add(sys.stderr, format=fmt, level=level, colorize=True)

    if log_file:
        if json_format:
            logger.add(log_file, serialize=True, rotation=rotation, retention=retention, level=level)
        else:
            logger.add(log_file, format=fmt, rotation=rotation, retention=retention, level=level)

    return logger
