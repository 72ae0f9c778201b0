"""Logging configuration helpers for Quizly."""

import logging

from quizly.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure the root logger once and return the application logger."""
    level = level or get_settings().log_level
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    else:
        root.setLevel(level)
    return logging.getLogger("quizly")
