"""Project-wide logging utilities.

A single ``livestats`` logger configured lazily; applications embedding
livestats can override handlers or levels as needed. Defaults to WARNING so
the hot path stays quiet; the registry and decay bookkeeping log at DEBUG.
"""
from __future__ import annotations

import logging
from typing import Optional

_LOGGER: Optional[logging.Logger] = None


def get_logger() -> logging.Logger:
    global _LOGGER
    if _LOGGER is None:
        logger = logging.getLogger("livestats")
        # Leave configured applications alone.
        if not logger.handlers and not logging.getLogger().handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("[%(name)s] %(levelname)s: %(message)s"))
            logger.addHandler(handler)
        if logger.level == logging.NOTSET:
            logger.setLevel(logging.WARNING)
        _LOGGER = logger
    return _LOGGER


__all__ = ["get_logger"]
