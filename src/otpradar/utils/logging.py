"""Logging helpers with consistent formatting."""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from rich.logging import RichHandler

from otpradar.utils.env import get_bool_env


def _level_from_env(default: int) -> int:
    raw = os.getenv("OTPRADAR_LOG_LEVEL")
    if not raw:
        return default
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else default


def get_logger(name: str, level: Optional[int] = None, *, rich: Optional[bool] = None) -> logging.Logger:
    """Configure and return a logger."""
    logger = logging.getLogger(f"otpradar.{name}")
    if logger.handlers:
        return logger

    level = level if level is not None else _level_from_env(logging.INFO)
    logger.setLevel(level)
    if rich is None:
        rich = get_bool_env("OTPRADAR_RICH_LOGS", default=True)

    if rich:
        handler: logging.Handler = RichHandler(
            level=level,
            markup=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            show_time=True,
            show_path=False,
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(name)s %(levelname)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    logger.addHandler(handler)
    logger.propagate = False
    return logger


def mask_code(code: str) -> str:
    """Hide all but the last two digits of a code for log output."""
    if len(code) <= 2:
        return "*" * len(code)
    return "*" * (len(code) - 2) + code[-2:]
