"""Balance recomputation engine.

Every account is an independent partition: its rows are ordered once with
the shared ordering policy and the running balance is the prefix sum of the
rows' net amounts (``credit + interest - debit``). Two strategies produce the
sequence from the same precomputed order:

- ``prefix-sum``: net amounts first, then a single ``itertools.accumulate``;
- ``incremental``: one loop carrying a local running total.

Arithmetic runs in a local decimal context that traps inexact results, so a
long sum either stays exact or fails loudly for that account. Results are
assigned to the rows only after the whole account succeeded; a failed
account keeps its previous balances and is reported in ``failures``.
"""

from __future__ import annotations

import decimal
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from itertools import accumulate

from .errors import ComputationError, DataIntegrityError
from .logging_setup import get_logger
from .models import (
    ZERO,
    AccountFailure,
    AccountKey,
    BalanceUpdate,
    LedgerTransaction,
    RecomputeReport,
    RecomputeResult,
    RunSummary,
    format_account_key,
    to_amount,
)
from .ordering import group_by_account, is_valid_account_key, order_account, sorted_account_keys
from .pmap import p_map

_logger = get_logger("member_ledger.engine")

# Capacity of a NUMERIC(18,2) balance column.
DEFAULT_MAX_ABS_BALANCE = Decimal("1e16")

# Wide enough for any NUMERIC(18,2) sum; anything that needs rounding traps.
_PRECISION = 38


class BalanceStrategy(str, Enum):
    PREFIX_SUM = "prefix-sum"
    INCREMENTAL = "incremental"


type _Computed = list[tuple[Decimal, Decimal | None]]


def _row_total(r: LedgerTransaction, with_total: bool) -> Decimal | None:
    return r.credit_amount if with_total else None


def _prefix_sum(ordered: Sequence[LedgerTransaction], *, with_total: bool) -> _Computed:
    nets = [r.net_amount for r in ordered]
    balances = accumulate(nets)
    return [(b, _row_total(r, with_total)) for b, r in zip(balances, ordered, strict=True)]


def _incremental(ordered: Sequence[LedgerTransaction], *, with_total: bool) -> _Computed:
    running = ZERO
    out: _Computed = []
    for r in ordered:
        running = running + r.credit_amount - r.debit_amount
        out.append((running, _row_total(r, with_total)))
    return out


_STRATEGIES: dict[BalanceStrategy, Callable[..., _Computed]] = {
    BalanceStrategy.PREFIX_SUM: _prefix_sum,
    BalanceStrategy.INCREMENTAL: _incremental,
}


@dataclass(frozen=True, slots=True)
class _AccountOutcome:
    key: AccountKey | None
    row_count: int
    updates: list[BalanceUpdate] | None = None
    failure: AccountFailure | None = None
    credits: Decimal = ZERO
    interest: Decimal = ZERO
    debits: Decimal = ZERO


def _failure(key: AccountKey | None, rows: list[LedgerTransaction], kind: str, msg: str):
    return _AccountOutcome(
        key=key,
        row_count=len(rows),
        failure=AccountFailure(account_key=key, kind=kind, message=msg, row_count=len(rows)),
    )


def _recompute_account(
    key: AccountKey | None,
    rows: list[LedgerTransaction],
    *,
    strategy: BalanceStrategy,
    with_total: bool,
    max_abs_balance: Decimal,
) -> _AccountOutcome:
    if not is_valid_account_key(key):
        return _failure(key, rows, "missing_account_key", "rows without a usable account key")

    ctx = decimal.Context(
        prec=_PRECISION,
        traps=[decimal.Inexact, decimal.InvalidOperation, decimal.Overflow],
    )
    try:
        with decimal.localcontext(ctx):
            ordered = order_account(rows)
            computed = _STRATEGIES[strategy](ordered, with_total=with_total)
            for r, (balance, _total) in zip(ordered, computed, strict=True):
                if abs(balance) >= max_abs_balance:
                    raise ComputationError(
                        f"running balance {balance} at row {r.row_id} exceeds "
                        f"the column capacity ({max_abs_balance})",
                        account_key=key,
                    )
            credits = sum((to_amount(r.credit) or ZERO for r in ordered), ZERO)
            interest = sum((to_amount(r.interest) or ZERO for r in ordered), ZERO)
            debits = sum((r.debit_amount for r in ordered), ZERO)
    except DataIntegrityError as e:
        return _failure(key, rows, e.kind, str(e))
    except ComputationError as e:
        return _failure(key, rows, e.kind, str(e))
    except decimal.DecimalException as e:
        return _failure(key, rows, ComputationError.kind, f"decimal arithmetic failed: {e!r}")

    # Whole account succeeded: only now write back.
    updates: list[BalanceUpdate] = []
    for r, (balance, total) in zip(ordered, computed, strict=True):
        r.balance = balance
        if with_total:
            r.total = total
        updates.append(BalanceUpdate(r.row_id, balance, total))

    _logger.debug(
        "account %s: %d rows, closing balance %s",
        format_account_key(key),
        len(ordered),
        updates[-1].balance if updates else ZERO,
    )
    return _AccountOutcome(
        key=key,
        row_count=len(rows),
        updates=updates,
        credits=credits,
        interest=interest,
        debits=debits,
    )


def recompute_balances(
    transactions: Iterable[LedgerTransaction],
    *,
    strategy: BalanceStrategy | str = BalanceStrategy.PREFIX_SUM,
    with_total: bool = False,
    concurrency: int = 1,
    max_abs_balance: Decimal = DEFAULT_MAX_ABS_BALANCE,
) -> RecomputeResult:
    """Recompute running balances for every account in ``transactions``.

    Parameters
    ----------
    transactions:
        Rows of any number of accounts, in any order.
    strategy:
        ``"prefix-sum"`` (default) or ``"incremental"``; both yield identical
        balances.
    with_total:
        Loan tables: also set ``total`` to the row's principal + interest.
    concurrency:
        Number of accounts computed at once (threads). Output order does not
        depend on it.
    max_abs_balance:
        A running balance whose magnitude reaches this value aborts the
        account with a computation failure.

    The run summary counts every input row in ``total_records`` and the date
    range, while credit/debit totals cover successfully recomputed accounts
    only.
    """

    strategy = BalanceStrategy(strategy)
    rows = list(transactions)
    groups = group_by_account(rows)
    keys = sorted_account_keys(groups)

    outcomes = p_map(
        keys,
        lambda k: _recompute_account(
            k,
            groups[k],
            strategy=strategy,
            with_total=with_total,
            max_abs_balance=max_abs_balance,
        ),
        concurrency=concurrency,
    )

    updates: dict[AccountKey, list[BalanceUpdate]] = {}
    failures: list[AccountFailure] = []
    credits = interest = debits = ZERO
    for out in outcomes:
        if out.failure is not None:
            _logger.warning(
                "account %s not recomputed (%s): %s",
                format_account_key(out.key),
                out.failure.kind,
                out.failure.message,
            )
            failures.append(out.failure)
            continue
        if out.key is None or out.updates is None:
            continue
        updates[out.key] = out.updates
        credits += out.credits
        interest += out.interest
        debits += out.debits

    days = [r.day for r in rows if r.day is not None]
    summary = RunSummary(
        accounts_processed=len(updates),
        accounts_failed=len(failures),
        total_records=len(rows),
        earliest_date=min(days) if days else None,
        latest_date=max(days) if days else None,
        total_credits=credits,
        total_interest=interest,
        total_debits=debits,
        net_balance=credits + interest - debits,
    )
    _logger.info(
        "Balance calculation complete: strategy=%s accounts=%d failed=%d records=%d net=%s",
        strategy.value,
        summary.accounts_processed,
        summary.accounts_failed,
        summary.total_records,
        summary.net_balance,
    )
    return RecomputeResult(
        report=RecomputeReport(strategy=strategy.value, summary=summary, failures=failures),
        updates=updates,
    )


__all__ = [
    "DEFAULT_MAX_ABS_BALANCE",
    "BalanceStrategy",
    "recompute_balances",
]
