"""Logging setup for scripts and long-running loops."""

from __future__ import annotations

from logging.handlers import RotatingFileHandler
from pathlib import Path
import logging

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str | int = "INFO", log_file: str | Path | None = None) -> logging.Logger:
    """
    Install stream (and optional rotating file) handlers on the package logger.

    Library modules only call `logging.getLogger(__name__)`; entry points call this once.
    """
    root = logging.getLogger("self_adjustment_engine")
    root.setLevel(level if isinstance(level, int) else level.upper())
    root.handlers.clear()
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    root.addHandler(stream)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=5_000_000, backupCount=5, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.propagate = False
    return root
