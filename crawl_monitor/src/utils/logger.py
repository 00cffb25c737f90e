"""Logging utilities."""
import logging
import sys
from typing import Optional, TextIO, Union

from ..config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level: Union[int, str, None] = None) -> int:
    """Turn a level name or number into a logging level.

    Unknown names fall back to INFO; None means ``settings.log_level``.
    """
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level or settings.log_level).upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logger(
    name: str = "crawl-monitor",
    level: Union[int, str, None] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Set up and configure the monitor's logger.

    Args:
        name: Logger name
        level: Level name or number (defaults to the configured ``log_level``)
        stream: Destination stream (defaults to stdout)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(resolve_level(level))

    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    return logger


def redirect_logger(stream: TextIO, level: Union[int, str, None] = None) -> None:
    """Send the monitor's log output to ``stream``, optionally changing the level.

    The CLI calls this with stderr while the live view is drawn on stdout.
    """
    if level is not None:
        logger.setLevel(resolve_level(level))
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler):
            handler.setStream(stream)


# Global logger instance
logger = setup_logger()
