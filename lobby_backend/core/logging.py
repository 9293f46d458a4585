# lobby_backend/core/logging.py

import logging
import os
import sys


DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

NOISY_LOGGERS = {
    "redis": logging.WARNING,
    "asyncio": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def setup_logging(log_level: str | None = None, log_file: str | None = None) -> None:
    """
    Configure application-wide logging.

    - Root level from ``log_level``, else LOG_LEVEL, else INFO
    - Always logs to stdout; also appends to ``log_file`` (or LOG_FILE) when given
    - Leaves existing handlers alone when Uvicorn got there first
    """
    level_name = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    log_file = log_file or os.getenv("LOG_FILE")

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    if root_logger.handlers:
        return

    formatter = logging.Formatter(DEFAULT_FORMAT)
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Usage:
        from lobby_backend.core.logging import get_logger

        logger = get_logger(__name__)
    """
    return logging.getLogger(name)
