"""General utilities for the es32_scheduler package."""

from __future__ import annotations

import json
import os
import sys
from typing import Any

from loguru import logger

_LOGGER_CONFIGURED = False


def configure_logging(*, force: bool = False) -> None:
    """Set up the global Loguru logger with application defaults."""
    global _LOGGER_CONFIGURED
    if _LOGGER_CONFIGURED and not force:
        return

    log_level = os.getenv("ES32_LOG_LEVEL", "INFO")
    diagnose = os.getenv("ES32_LOG_DIAGNOSE", "false").lower() in {
        "1",
        "true",
        "yes",
        "on",
    }

    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level,
        backtrace=False,
        diagnose=diagnose,
        enqueue=False,
        colorize=True,
    )

    _LOGGER_CONFIGURED = True


def preview_payload(payload: Any, limit: int = 200) -> str:
    """Return a truncated JSON rendering of ``payload`` for debug logs."""
    text = json.dumps(payload, default=str)
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


configure_logging()

__all__ = [
    "configure_logging",
    "preview_payload",
    "logger",
]
