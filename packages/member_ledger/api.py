"""Table-level orchestration for the ``member_ledger`` package.

Each function opens its own ``session_scope`` from ``ledger_db.client``,
loads the rows of one layout, runs the in-memory component (marker, engine,
verifier, summary) and, where applicable, writes the results back.

Recomputation commits per chunk of ``batch_size`` accounts. Every account's
rows are written inside one chunk, so an interrupted run leaves each account
either fully rewritten or untouched. Storage errors propagate unchanged.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from ledger_db.client import session_scope

from .config import (
    resolve_batch_size,
    resolve_max_workers,
    resolve_strategy,
    resolve_tolerance,
)
from .engine import DEFAULT_MAX_ABS_BALANCE, BalanceStrategy, recompute_balances
from .layouts import TableLayout, get_layout
from .logging_setup import get_logger
from .models import (
    AccountFailure,
    AccountKey,
    AccountSummary,
    OpeningReport,
    PipelineReport,
    RecomputeReport,
    RunSummary,
    VerificationReport,
)
from .opening import mark_opening_balances
from .ordering import sorted_account_keys
from .persistence import (
    apply_balance_updates,
    apply_flag_updates,
    fetch_account_keys,
    fetch_transactions,
)
from .reports import summarize_accounts
from .verifier import verify_balances

_logger = get_logger("member_ledger.api")


def _layout(layout: TableLayout | str) -> TableLayout:
    return layout if isinstance(layout, TableLayout) else get_layout(layout)


def _chunks(keys: Sequence[AccountKey], size: int) -> list[Sequence[AccountKey]]:
    return [keys[i : i + size] for i in range(0, len(keys), size)]


def _merge_summaries(parts: Sequence[RunSummary]) -> RunSummary:
    earliest = [p.earliest_date for p in parts if p.earliest_date is not None]
    latest = [p.latest_date for p in parts if p.latest_date is not None]
    credits = sum((p.total_credits for p in parts), Decimal("0.00"))
    interest = sum((p.total_interest for p in parts), Decimal("0.00"))
    debits = sum((p.total_debits for p in parts), Decimal("0.00"))
    return RunSummary(
        accounts_processed=sum(p.accounts_processed for p in parts),
        accounts_failed=sum(p.accounts_failed for p in parts),
        total_records=sum(p.total_records for p in parts),
        earliest_date=min(earliest) if earliest else None,
        latest_date=max(latest) if latest else None,
        total_credits=credits,
        total_interest=interest,
        total_debits=debits,
        net_balance=credits + interest - debits,
    )


def mark_table(
    layout: TableLayout | str,
    *,
    database_url: str | None = None,
    clear_stale: bool = False,
) -> OpeningReport:
    """Mark the opening row of every account in ``layout`` and persist the flags."""

    layout = _layout(layout)
    with session_scope(database_url=database_url) as session:
        rows = fetch_transactions(session, layout)
        result = mark_opening_balances(rows, clear_stale=clear_stale)
        apply_flag_updates(session, layout, result.updates)
    return result.report


def recompute_table(
    layout: TableLayout | str,
    *,
    database_url: str | None = None,
    strategy: BalanceStrategy | str | None = None,
    workers: int | None = None,
    batch_size: int | None = None,
    max_abs_balance: Decimal = DEFAULT_MAX_ABS_BALANCE,
) -> RecomputeReport:
    """Recompute and persist running balances for every account in ``layout``.

    ``strategy``, ``workers`` and ``batch_size`` default to the
    ``MEMBER_LEDGER_*`` environment settings (see :mod:`member_ledger.config`).
    Failed accounts are reported and left unwritten.
    """

    layout = _layout(layout)
    strategy = resolve_strategy(strategy)
    concurrency = resolve_max_workers(workers)
    size = resolve_batch_size(batch_size)

    summaries: list[RunSummary] = []
    failures: list[AccountFailure] = []
    with session_scope(database_url=database_url) as session:
        keys = sorted_account_keys(dict.fromkeys(fetch_account_keys(session, layout)))
        chunks = _chunks(keys, size)
        for n, chunk in enumerate(chunks, start=1):
            rows = fetch_transactions(session, layout, account_keys=chunk)
            result = recompute_balances(
                rows,
                strategy=strategy,
                with_total=layout.has_total,
                concurrency=concurrency,
                max_abs_balance=max_abs_balance,
            )
            written = apply_balance_updates(
                session,
                layout,
                (u for updates in result.updates.values() for u in updates),
            )
            session.commit()
            _logger.info(
                "%s: chunk %d/%d committed (%d accounts, %d rows written)",
                layout.name,
                n,
                len(chunks),
                len(chunk),
                written,
            )
            summaries.append(result.summary)
            failures.extend(result.failures)

    return RecomputeReport(
        strategy=strategy.value,
        summary=_merge_summaries(summaries),
        failures=failures,
    )


def verify_table(
    layout: TableLayout | str,
    *,
    database_url: str | None = None,
    tolerance: Decimal | str | None = None,
) -> VerificationReport:
    """Audit the stored balances of ``layout`` (read-only)."""

    layout = _layout(layout)
    with session_scope(database_url=database_url) as session:
        rows = fetch_transactions(session, layout)
    return verify_balances(rows, tolerance=resolve_tolerance(tolerance))


def summarize_table(
    layout: TableLayout | str,
    *,
    database_url: str | None = None,
    account_keys: Sequence[AccountKey] | None = None,
) -> list[AccountSummary]:
    layout = _layout(layout)
    if account_keys is not None:
        layout.check_account_keys(account_keys)
    with session_scope(database_url=database_url) as session:
        rows = fetch_transactions(session, layout, account_keys=account_keys)
    return summarize_accounts(rows)


def run_pipeline(
    layout: TableLayout | str,
    *,
    database_url: str | None = None,
    clear_stale: bool = False,
    strategy: BalanceStrategy | str | None = None,
    workers: int | None = None,
    batch_size: int | None = None,
    tolerance: Decimal | str | None = None,
) -> PipelineReport:
    """Mark openings, recompute balances, then verify, for one layout."""

    layout = _layout(layout)
    opening = mark_table(layout, database_url=database_url, clear_stale=clear_stale)
    recompute = recompute_table(
        layout,
        database_url=database_url,
        strategy=strategy,
        workers=workers,
        batch_size=batch_size,
    )
    verification = verify_table(layout, database_url=database_url, tolerance=tolerance)
    return PipelineReport(
        table=layout.name,
        opening=opening,
        recompute=recompute,
        verification=verification,
    )


__all__ = [
    "mark_table",
    "recompute_table",
    "run_pipeline",
    "summarize_table",
    "verify_table",
]
