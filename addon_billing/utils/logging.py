"""
Engine Logging

loguru owns the sinks. Engine services log through the stdlib
``logging.getLogger(__name__)`` so callers can hand them any logger;
InterceptHandler forwards those records to loguru.

Source: https://loguru.readthedocs.io/en/stable/overview.html#entirely-compatible-with-standard-logging
"""

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from loguru import logger

if TYPE_CHECKING:
    from addon_billing.core.config import AddOnEngineSettings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru, keeping the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _file_sink(log_file: str, level: str, json_logs: bool) -> dict[str, Any]:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    return {
        "sink": log_file,
        "level": level,
        "format": FILE_FORMAT,
        "serialize": json_logs,
        "rotation": "50 MB",
        "retention": "14 days",
        "compression": "zip",
    }


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_logs: bool = False,
) -> None:
    """
    Replace loguru's sinks and route stdlib logging into them.

    Args:
        level: Minimum level for every sink
        log_file: Also write to this file, rotated and compressed
        json_logs: Serialize records as JSON instead of the text format
    """
    logger.remove()

    if json_logs:
        logger.add(sys.stderr, level=level, format="{message}", serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    if log_file:
        logger.add(**_file_sink(log_file, level, json_logs))

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    logger.debug(f"Engine logging at {level} (json={json_logs}, file={log_file or '-'})")


def setup_logging_from_settings(settings: Optional["AddOnEngineSettings"] = None) -> None:
    """Configure logging from ADDON_LOG_LEVEL, ADDON_LOG_FILE and ADDON_JSON_LOGS."""
    if settings is None:
        from addon_billing.core.config import get_settings

        settings = get_settings()
    setup_logging(level=settings.LOG_LEVEL, log_file=settings.LOG_FILE, json_logs=settings.JSON_LOGS)


def get_logger(name: str = __name__):  # type: ignore[no-untyped-def]
    """loguru logger bound to ``name``; used by the db layer."""
    return logger.bind(name=name)
