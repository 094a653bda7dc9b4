"""Logging for ``budget_import``.

Entrypoints (the CLI callback and :func:`budget_import.web.create_app`) call
:func:`configure_logging` once; every other module only asks for a named
logger via :func:`get_logger` and writes ``event:sub key=value`` messages.

Until an entrypoint configures output, the package logger carries a
``NullHandler`` so importing the library never prints anything.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

ROOT_LOGGER = "budget_import"
LEVEL_ENV = "BUDGET_IMPORT_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

# The OpenAI SDK logs every HTTP request through httpx at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "openai")

_state = {"configured": False}


def resolve_level(level: int | str | None) -> int:
    """``int`` passes through; names and digit strings are looked up.

    ``None`` reads ``BUDGET_IMPORT_LOG_LEVEL``. Anything unrecognized is INFO.
    """

    if level is None:
        level = os.getenv(LEVEL_ENV, "")
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    value = logging.getLevelName(name) if name else None
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str = DEFAULT_FORMAT,
    stream: IO[str] = sys.stderr,
) -> None:
    """Send package logs to ``stream``; later calls are no-ops."""

    if _state["configured"]:
        return

    resolved = resolve_level(level)
    pkg = logging.getLogger(ROOT_LOGGER)
    pkg.handlers = [h for h in pkg.handlers if not isinstance(h, logging.NullHandler)]

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt))
    handler.setLevel(resolved)
    pkg.addHandler(handler)
    pkg.setLevel(resolved)
    pkg.propagate = False

    if resolved > logging.DEBUG:
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _state["configured"] = True


def get_logger(name: str) -> logging.Logger:
    pkg = logging.getLogger(ROOT_LOGGER)
    if not _state["configured"] and not any(
        isinstance(h, logging.NullHandler) for h in pkg.handlers
    ):
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "resolve_level"]
