"""Runtime settings resolved from explicit overrides or the environment.

Each resolver takes an optional override (a CLI option) and otherwise reads
its ``MEMBER_LEDGER_*`` variable. Unparseable environment values fall back to
the default with a warning; an explicit invalid override raises
``ValueError``.
"""

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation

from .engine import BalanceStrategy
from .logging_setup import get_logger

_logger = get_logger("member_ledger.config")

MAX_WORKERS_ENV = "MEMBER_LEDGER_MAX_WORKERS"
BATCH_SIZE_ENV = "MEMBER_LEDGER_BATCH_SIZE"
TOLERANCE_ENV = "MEMBER_LEDGER_TOLERANCE"
STRATEGY_ENV = "MEMBER_LEDGER_STRATEGY"

DEFAULT_MAX_WORKERS = 1
WORKER_CAP = 32
DEFAULT_BATCH_SIZE = 500
DEFAULT_TOLERANCE = Decimal("0.01")
DEFAULT_STRATEGY = BalanceStrategy.PREFIX_SUM


def _env_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = int(raw)
    except ValueError:
        _logger.warning("ignoring %s=%r: not an integer", name, raw)
        return None
    if value < 1:
        _logger.warning("ignoring %s=%r: must be positive", name, raw)
        return None
    return value


def resolve_max_workers(override: int | None = None) -> int:
    """Worker count for the engine's account fan-out.

    Honors ``MEMBER_LEDGER_MAX_WORKERS`` when no override is given, caps at 32
    to avoid oversubscription, and defaults to 1 (sequential).
    """

    if override is not None:
        if override < 1:
            raise ValueError("workers must be a positive integer")
        return min(override, WORKER_CAP)
    value = _env_int(MAX_WORKERS_ENV)
    if value is None:
        return DEFAULT_MAX_WORKERS
    return min(value, WORKER_CAP)


def resolve_batch_size(override: int | None = None) -> int:
    """Accounts written per commit during recomputation."""

    if override is not None:
        if override < 1:
            raise ValueError("batch size must be a positive integer")
        return override
    value = _env_int(BATCH_SIZE_ENV)
    return DEFAULT_BATCH_SIZE if value is None else value


def parse_tolerance(raw: str | float | Decimal) -> Decimal:
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as e:
        raise ValueError(f"tolerance is not a number: {raw!r}") from e
    if not value.is_finite() or value < 0:
        raise ValueError(f"tolerance must be a non-negative number: {raw!r}")
    return value


def resolve_tolerance(override: str | Decimal | None = None) -> Decimal:
    if override is not None:
        return parse_tolerance(override)
    raw = os.getenv(TOLERANCE_ENV)
    if raw is None or not raw.strip():
        return DEFAULT_TOLERANCE
    try:
        return parse_tolerance(raw)
    except ValueError as e:
        _logger.warning("ignoring %s: %s", TOLERANCE_ENV, e)
        return DEFAULT_TOLERANCE


def resolve_strategy(override: str | BalanceStrategy | None = None) -> BalanceStrategy:
    if override is not None:
        return BalanceStrategy(override)
    raw = os.getenv(STRATEGY_ENV)
    if raw is None or not raw.strip():
        return DEFAULT_STRATEGY
    try:
        return BalanceStrategy(raw.strip().lower())
    except ValueError:
        _logger.warning("ignoring %s=%r: unknown strategy", STRATEGY_ENV, raw)
        return DEFAULT_STRATEGY


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_MAX_WORKERS",
    "DEFAULT_STRATEGY",
    "DEFAULT_TOLERANCE",
    "parse_tolerance",
    "resolve_batch_size",
    "resolve_max_workers",
    "resolve_strategy",
    "resolve_tolerance",
]
