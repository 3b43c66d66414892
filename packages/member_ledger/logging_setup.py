"""Logging for ``member_ledger``.

Every module logs through ``get_logger("member_ledger.<module>")``: recompute
runs report chunk commits and totals at INFO, skipped or failed accounts at
WARNING, and per-account detail at DEBUG. Nothing is printed until an
entrypoint calls :func:`configure_logging`; the ``member-ledger`` CLI does so
on startup, and a host application may instead wire the ``member_ledger``
logger into its own handlers.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "member_ledger"
_LEVEL_ENV = "MEMBER_LEDGER_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _level_from_text(text: str) -> int:
    text = text.strip().upper()
    if text.isdigit():
        return int(text)
    numeric = logging.getLevelName(text)
    # getLevelName maps unknown names to "Level X" strings.
    return numeric if isinstance(numeric, int) else logging.INFO


def _resolve_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        level = os.getenv(_LEVEL_ENV) or ""
        if not level.strip():
            return logging.INFO
    return _level_from_text(level)


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Send ``member_ledger`` records to ``stream`` (stderr by default).

    ``level`` takes a number or a level name; when omitted it comes from
    ``MEMBER_LEDGER_LOG_LEVEL`` and falls back to INFO. Only the first call
    has an effect.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = _resolve_level(level)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    logger.handlers = [h for h in logger.handlers if not isinstance(h, logging.NullHandler)]
    logger.addHandler(handler)
    logger.setLevel(resolved)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Module logger under ``member_ledger``; silent until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
