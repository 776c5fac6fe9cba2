"""Logging configuration helpers for the quiz attempt engine."""

from __future__ import annotations

import logging
from logging import Logger
import os

from quiz_taker.constants.about import APP_NAME, APP_VERSION

LOG_LEVEL_ENV_VAR = "QUIZ_TAKER_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: int | str | None = None) -> Logger:
    """Configure basic logging for the host application and return the engine logger.

    ``level`` falls back to ``QUIZ_TAKER_LOG_LEVEL`` and then to INFO.
    """
    resolved = level if level is not None else os.getenv(LOG_LEVEL_ENV_VAR, "INFO").upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logger = logging.getLogger("quiz_taker")
    logger.info("%s %s logging configured", APP_NAME, APP_VERSION)
    return logger
