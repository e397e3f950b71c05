"""Logging setup for devtrail entry points."""

from __future__ import annotations

import logging
import os
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_HANDLER_TAG = "_devtrail_handler"


def configure_logging(level: str | None = None, log_dir: str | Path | None = None) -> logging.Logger:
    """
    Configure the ``devtrail`` logger hierarchy.

    Installs a console handler, and with ``log_dir`` also ``combined.log``
    (all records) and ``error.log`` (ERROR and above). Calling again
    replaces the handlers installed by a previous call.

    Args:
        level: Level name; falls back to DEVTRAIL_LOG_LEVEL, then INFO
        log_dir: Optional directory for the file handlers

    Returns:
        The configured ``devtrail`` logger
    """
    level_name = (level or os.getenv("DEVTRAIL_LOG_LEVEL") or "INFO").upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger("devtrail")
    root.setLevel(numeric_level)

    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_dir is not None:
        directory = Path(log_dir).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(directory / "combined.log", encoding="utf-8"))
        error_handler = logging.FileHandler(directory / "error.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        handlers.append(error_handler)

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_TAG, True)
        root.addHandler(handler)

    return root


__all__ = ["configure_logging", "LOG_FORMAT"]
