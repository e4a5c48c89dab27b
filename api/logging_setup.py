"""
api/logging_setup.py — Logging configuration for the mixer remote server.

Responsibilities:
    - Configure structured logging to stderr for every module logger
    - Quiet third-party loggers that would otherwise log every frame
"""

from __future__ import annotations

import logging
import os
import sys

_LOG_FORMAT = "%(asctime)s.%(msecs)03d " "[%(name)s] %(levelname)s " "%(message)s"
_LOG_DATE_FORMAT = "%H:%M:%S"


def configure_logging(level: int | None = None) -> None:
    """
    Configure root logger to write structured output to stderr.

    Args:
        level: Python logging level. Defaults to ``LOG_LEVEL`` from the
            environment, else INFO.
    """
    if level is None:
        level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Silence noisy third-party loggers
    logging.getLogger("websocket").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
