"""
Logging for the query copilot.

``get_logger`` gives every module a stdout logger at the configured level.
``log_event`` writes one pipe-separated ``event | key=value`` line so the
stages of a request (plan, sanitize, execute, chart, summary) can be
grepped by field.
"""
from __future__ import annotations

import logging
import sys
from typing import Any

from src.core.config import get_settings

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_MAX_VALUE_CHARS = 200


def get_logger(name: str) -> logging.Logger:
    settings = get_settings()
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger


def format_fields(**fields: Any) -> str:
    """``a=1 | b=x``; long values are cut so a pipeline dump cannot flood a line."""
    parts = []
    for key, value in fields.items():
        text = str(value)
        if len(text) > _MAX_VALUE_CHARS:
            text = text[: _MAX_VALUE_CHARS - 3] + "..."
        parts.append(f"{key}={text}")
    return " | ".join(parts)


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    if not logger.isEnabledFor(level):
        return
    line = f"{event} | {format_fields(**fields)}" if fields else event
    logger.log(level, line)
