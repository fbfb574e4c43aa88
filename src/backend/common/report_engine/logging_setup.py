"""Logging configuration for the report engine.

Entry points (the CLI, a host application) call ``configure_logging``.
Engine modules only call ``get_logger(__name__)`` and never attach handlers.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, Optional

_PKG_LOGGER_NAME = "common.report_engine"
_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_HANDLER: Optional[logging.StreamHandler] = None


def _parse_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv("REPORT_ENGINE_LOG_LEVEL")
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Attach a single stream handler to the engine's root logger.

    Calling it again replaces that handler, so it always writes to the current
    ``stream`` (``sys.stderr`` when omitted). The previous stream may already be
    closed and is never flushed.
    """
    global _HANDLER
    root = logging.getLogger(_PKG_LOGGER_NAME)
    root.setLevel(_parse_level(level))
    if _HANDLER is not None:
        root.removeHandler(_HANDLER)
    _HANDLER = logging.StreamHandler(stream or sys.stderr)
    _HANDLER.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))
    root.addHandler(_HANDLER)
    root.propagate = False


def reset_logging() -> None:
    """Detach the handler added by ``configure_logging``."""
    global _HANDLER
    if _HANDLER is None:
        return
    root = logging.getLogger(_PKG_LOGGER_NAME)
    root.removeHandler(_HANDLER)
    root.propagate = True
    root.setLevel(logging.NOTSET)
    _HANDLER = None


def get_logger(name: str) -> logging.Logger:
    root = logging.getLogger(_PKG_LOGGER_NAME)
    if not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)
