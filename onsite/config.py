from __future__ import annotations

import logging
import os
import sys
from typing import Optional

DEFAULT_DB_PATH = os.path.join(os.path.dirname(__file__), "onsite.sqlite")

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def db_path() -> str:
    # Read on every call so tests and deployments can point at another file.
    return os.environ.get("ONSITE_DB_PATH") or DEFAULT_DB_PATH


def _int_env(name: str, default: int) -> int:
    try:
        value = int(os.environ.get(name, ""))
    except ValueError:
        return default
    return value if value > 0 else default


def max_sessions() -> int:
    return _int_env("ONSITE_MAX_SESSIONS", 500)


def session_idle_seconds() -> int:
    return _int_env("ONSITE_SESSION_IDLE_SECONDS", 8 * 3600)


def log_level() -> int:
    name = os.environ.get("ONSITE_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


_console_handler: Optional[logging.Handler] = None


def configure_logging() -> None:
    """Attach a single console handler to the ``onsite`` logger."""
    global _console_handler

    logger = logging.getLogger("onsite")
    logger.setLevel(log_level())
    if _console_handler is None:
        _console_handler = logging.StreamHandler(sys.stdout)
        _console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    if _console_handler not in logger.handlers:
        logger.addHandler(_console_handler)
