"""Logging for the ``expense_sync`` package.

Every module logs through ``get_logger("expense_sync.<module>")`` with
``component:event key=value`` messages, e.g. ``ledger:merged id=... amount=...``.
Nothing is emitted until an entrypoint calls :func:`configure_logging`; the
CLI does so in its root callback. Host applications that embed the package can
attach their own handlers to the ``expense_sync`` logger instead.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "expense_sync"
_LEVEL_ENV = "EXPENSE_SYNC_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    """Resolve ``level`` to a numeric logging level.

    ``None`` reads ``EXPENSE_SYNC_LOG_LEVEL``. Unknown names resolve to INFO.
    """

    if level is None:
        level = os.getenv(_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelNamesMapping().get(name)
    return numeric if numeric is not None else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Send package logs to ``stream``; later calls are ignored.

    Parameters
    ----------
    level:
        Level number or name. Defaults to ``EXPENSE_SYNC_LOG_LEVEL``, then INFO.
    fmt:
        Record format; defaults to timestamp, logger name, level, message.
    stream:
        Destination of the handler, ``sys.stderr`` unless given.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in [h for h in logger.handlers if isinstance(h, logging.NullHandler)]:
        logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Logger for an ``expense_sync`` module; silent until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
