"""
Project-wide logging setup for the reconciler.

Provides a simple, consistent console logger with optional JSON output.
Controlled via environment variables:
- MPR_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
- MPR_LOG_FORMAT: text|json (default: text)
"""
from __future__ import annotations

import logging
import os
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _get_level(level: Optional[str] = None) -> int:
    name = (level or os.getenv("MPR_LOG_LEVEL", "INFO")).upper()
    return getattr(logging, name, logging.INFO)


def build_formatter(fmt: Optional[str] = None) -> logging.Formatter:
    """Formatter for the requested output format, text unless 'json'."""
    fmt = (fmt or os.getenv("MPR_LOG_FORMAT", "text")).lower()
    if fmt == "json":
        return JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
        )
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    force: bool = False,
    *,
    level: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Configure root logging for console output.

    If a handler is already present and force is False, this is a no-op.
    An explicit level overrides MPR_LOG_LEVEL.
    """
    target_logger = logger or logging.getLogger()
    if target_logger.handlers and not force:
        return

    if force:
        for h in list(target_logger.handlers):
            target_logger.removeHandler(h)

    target_logger.setLevel(_get_level(level))

    handler = logging.StreamHandler()
    handler.setFormatter(build_formatter())
    target_logger.addHandler(handler)
