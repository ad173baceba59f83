"""Package-wide log level and per-component loggers."""

from __future__ import annotations

import logging
from enum import IntEnum

_ROOT_NAME = "kvikpy"


class LogLevel(IntEnum):
    """Global log level."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    OFF = 255


_TO_LOGGING = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.OFF: logging.CRITICAL + 1,
}

_current = LogLevel.INFO


def set_log_level(level: LogLevel | int) -> None:
    """Set the level applied to every logger of the package."""
    global _current
    level = LogLevel(level)
    _current = level
    logging.getLogger(_ROOT_NAME).setLevel(_TO_LOGGING[level])


def get_log_level() -> LogLevel:
    """Return the level currently in effect."""
    return _current


def get_logger(tag: str) -> logging.Logger:
    """Return the logger for a component identified by ``tag``."""
    return logging.getLogger(f"{_ROOT_NAME}.{tag}")


set_log_level(_current)