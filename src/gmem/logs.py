"""Logging setup, done once by the process entry point.

Modules log through ``logging.getLogger(__name__)``; this only attaches
handlers to the ``gmem`` package logger.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler

from gmem.config import LogConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILENAME = "gmem.log"

_HANDLER_TAG = "_gmem_handler"


def setup_logging(config: LogConfig) -> logging.Logger:
    """Configure and return the ``gmem`` logger. Safe to call more than once."""
    root = logging.getLogger("gmem")
    level = logging.DEBUG if config.debug else getattr(logging, config.level.upper(), logging.INFO)
    root.setLevel(level)
    root.propagate = False

    for handler in [h for h in root.handlers if getattr(h, _HANDLER_TAG, False)]:
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    # Without debug the console only shows problems; the file gets everything
    console.setLevel(level if config.debug else logging.WARNING)
    setattr(console, _HANDLER_TAG, True)
    root.addHandler(console)

    if config.enabled:
        config.dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.dir / LOG_FILENAME,
            maxBytes=config.max_size,
            backupCount=config.backups,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        setattr(file_handler, _HANDLER_TAG, True)
        root.addHandler(file_handler)

    return root
