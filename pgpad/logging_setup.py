"""Logging configuration for the TUI process."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import AppConfig

DEFAULT_LOG_FILE = Path.home() / ".cache" / "pgpad" / "pgpad.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(config: AppConfig) -> logging.Handler:
    """Route ``pgpad`` loggers to a file; Textual owns the terminal."""

    path = config.log_file or DEFAULT_LOG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger = logging.getLogger("pgpad")
    logger.setLevel(config.log_level)
    for existing in tuple(logger.handlers):
        if isinstance(existing, logging.FileHandler):
            logger.removeHandler(existing)
            existing.close()
    logger.addHandler(handler)
    return handler


__all__ = ["DEFAULT_LOG_FILE", "configure_logging"]
