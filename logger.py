"""
logger.py

Responsibility: Configures stdlib logging for the whole process once at startup.
Does NOT: write log files, rotate logs, or expose log entries over HTTP.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Loggers that would otherwise log every request or retry at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "botocore", "apscheduler.executors.default")


def resolve_level(name: str) -> int:
    """
    Maps a config log level ("debug", "info", "warn", "error") to a
    logging constant; unknown names fall back to INFO.
    """
    return _LEVELS.get(name.strip().lower(), logging.INFO)


def uvicorn_level(name: str) -> str:
    """Returns the level name uvicorn expects ("warn" becomes "warning")."""
    return logging.getLevelName(resolve_level(name)).lower()


def setup_logging(level: str = "info") -> None:
    """
    Installs a single stderr handler on the root logger.

    Calling it again replaces the previous handler rather than adding a
    second one.

    Args:
        level: Config log level name.
    """
    numeric = resolve_level(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))

    # uvicorn's loggers propagate to the root handler installed above
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True
        uvicorn_logger.setLevel(numeric)
