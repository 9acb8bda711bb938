"""Logging for the rent invoice API server, scheduler and CLI.

Everything goes to stdout and to a log file, which is the operator's record
of generation runs, skipped units and overdue sweeps. The level comes from
``Settings.log_level`` or the LOG_LEVEL environment variable (default INFO).
"""

import logging
import os
import sys
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVELS = {
    name: getattr(logging, name) for name in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
}

# Third-party loggers that drown the invoice logs at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "httpx")


def get_log_level(default: str = "INFO") -> int:
    """Level named by LOG_LEVEL; unknown names fall back to INFO."""
    return LEVELS.get(os.getenv("LOG_LEVEL", default).upper(), logging.INFO)


def _resolve_level(level: str | None) -> int:
    if level:
        return LEVELS.get(level.upper(), logging.INFO)
    return get_log_level()


def _handlers(log_path: Path) -> list[logging.Handler]:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return [logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)]


def setup_server_logging(log_file: str = "logs/server.log", level: str | None = None) -> None:
    """Route the root logger to stdout and ``log_file``.

    Calling it again replaces the handlers instead of stacking them. Unless
    DEBUG is requested, SQL and HTTP client loggers stay at WARNING.

    Args:
        log_file: Log file path; missing directories are created
        level: Level name overriding LOG_LEVEL
    """
    log_level = _resolve_level(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    for handler in _handlers(Path(log_file)):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    if log_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
