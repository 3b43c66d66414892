"""Opening-balance marker.

Tags the first row of every account (under the shared ordering policy) with
the ``CWO`` operator flag. The marker mutates the in-memory rows and returns
the same changes as ``FlagUpdate`` payloads for the storage layer.
"""

from __future__ import annotations

from collections.abc import Iterable

from .errors import DataIntegrityError, OrderingTieError
from .logging_setup import get_logger
from .models import (
    OPENING_FLAG,
    FlagUpdate,
    IssueKind,
    LedgerTransaction,
    OpeningMarkResult,
    OpeningReport,
    RowIssue,
    format_account_key,
)
from .ordering import (
    first_in_order,
    group_by_account,
    is_valid_account_key,
    sorted_account_keys,
)

_logger = get_logger("member_ledger.opening")


def _issue_for(err: DataIntegrityError, rows: list[LedgerTransaction]) -> RowIssue:
    if isinstance(err, OrderingTieError):
        kind = IssueKind.UNRESOLVABLE_TIE
        row_id = err.row_ids[0] if err.row_ids else None
    else:
        kind = IssueKind.MISSING_DATE
        row_id = next((r.row_id for r in rows if r.day is None), None)
    day = next((r.day for r in rows if r.row_id == row_id), None) if row_id is not None else None
    return RowIssue(
        account_key=err.account_key,
        row_id=row_id,
        date=day,
        kind=kind,
        detail=str(err),
    )


def mark_opening_balances(
    transactions: Iterable[LedgerTransaction],
    *,
    clear_stale: bool = False,
) -> OpeningMarkResult:
    """Flag the chronologically first row of each account as ``CWO``.

    - An account whose first row already carries ``CWO`` is left untouched.
    - Any other operator value on that first row is overwritten.
    - With ``clear_stale=True``, ``CWO`` flags on later rows of the same
      account are reset to ``None``; otherwise they are left for the verifier
      to report.
    - Accounts whose first row cannot be determined (missing date, rows tied
      under the ordering policy, malformed key) are skipped and listed in the
      report's ``issues``.
    """

    groups = group_by_account(transactions)
    updates: list[FlagUpdate] = []
    issues: list[RowIssue] = []
    accounts_affected = 0
    rows_marked = 0
    rows_cleared = 0

    for key in sorted_account_keys(groups):
        rows = groups[key]
        if not is_valid_account_key(key):
            issues.append(
                RowIssue(
                    account_key=key,
                    kind=IssueKind.MISSING_ACCOUNT_KEY,
                    detail=f"{len(rows)} row(s) without a usable account key",
                )
            )
            continue

        try:
            first = first_in_order(rows)
        except DataIntegrityError as e:
            _logger.warning("skipping account %s: %s", format_account_key(key), e)
            issues.append(_issue_for(e, rows))
            continue

        touched = False
        if not first.is_opening:
            first.operator_flag = OPENING_FLAG
            updates.append(FlagUpdate(first.row_id, key, OPENING_FLAG))
            rows_marked += 1
            touched = True

        if clear_stale:
            for r in rows:
                if r is not first and r.is_opening:
                    r.operator_flag = None
                    updates.append(FlagUpdate(r.row_id, key, None))
                    rows_cleared += 1
                    touched = True

        if touched:
            accounts_affected += 1

    report = OpeningReport(
        accounts_scanned=len(groups),
        accounts_affected=accounts_affected,
        rows_marked=rows_marked,
        rows_cleared=rows_cleared,
        issues=issues,
    )
    _logger.info(
        "Opening balances marked: rows=%d cleared=%d accounts=%d/%d skipped=%d",
        rows_marked,
        rows_cleared,
        accounts_affected,
        len(groups),
        len(issues),
    )
    return OpeningMarkResult(report=report, updates=updates)


__all__ = ["mark_opening_balances"]
