"""
Centralized logging setup.

``get_logger`` returns module loggers that share one formatter, a console
handler and, when LOG_FILE is configured, a rotating log file.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from config import get_settings

_FMT = "%(asctime)s | %(levelname)-8s | %(name)-24s | %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3

_formatter = logging.Formatter(_FMT, datefmt=_DATE_FMT)
_handlers: list[logging.Handler] = []


def _build_handlers() -> list[logging.Handler]:
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL, logging.INFO)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_formatter)
    console.setLevel(level)
    handlers: list[logging.Handler] = [console]

    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_path), maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
        )
        file_handler.setFormatter(_formatter)
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)
    return handlers


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger identified by *name* (usually ``__name__``).

    All loggers share the same handlers so output is consistent across
    the application.
    """
    if not _handlers:
        _handlers.extend(_build_handlers())

    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)
        for handler in _handlers:
            logger.addHandler(handler)
        logger.propagate = False
    return logger
