"""Loguru sink configuration for the server entry points.

Library code logs through `from loguru import logger` and never configures
sinks; entry points call configure_logging() once at startup.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from loguru import logger

STDERR_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)

# Loggers that uvicorn and friends configure for themselves
_STDLIB_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "httpx")


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that issued the stdlib call
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(level: str = "INFO", log_file: str | Path | None = None) -> None:
    """Install stderr (and optional rotating file) sinks and intercept stdlib logging.

    Args:
        level: Minimum level for all sinks
        log_file: Optional path for a rotating log file

    Example:
        >>> configure_logging("DEBUG")
    """
    level = level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=STDERR_FORMAT)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, level=level, rotation="10 MB", retention=5, enqueue=True)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _STDLIB_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [InterceptHandler()]
        stdlib_logger.propagate = False

    logger.debug(f"Logging configured at {level}")
