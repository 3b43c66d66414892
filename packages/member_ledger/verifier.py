"""Read-only audit of stored running balances.

For each account the rows are put in policy order and every step is checked:
the stored balance must move by exactly the row's net amount (within
``tolerance``) from the previous stored balance, starting from zero.

A single corrupted balance disturbs two steps: its own and the next one. To
report the corrupted row only, a step that fails against the previous stored
balance is re-checked against the previous row's *expected* balance whenever
the previous row was itself flagged. A persistent offset (for example a row
missing from the sum) is still reported once, at the row where it starts.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from decimal import Decimal

from .config import parse_tolerance
from .errors import ComputationError, DataIntegrityError, OrderingTieError
from .logging_setup import get_logger
from .models import (
    CENT,
    ZERO,
    AccountKey,
    Discrepancy,
    IssueKind,
    LedgerTransaction,
    RowIssue,
    VerificationReport,
    format_account_key,
    to_amount,
)
from .ordering import group_by_account, is_valid_account_key, order_account, sorted_account_keys

_logger = get_logger("member_ledger.verifier")

DEFAULT_TOLERANCE = CENT


def _row_issues(r: LedgerTransaction) -> tuple[list[RowIssue], bool]:
    """Precondition checks for one row; returns (issues, amounts_usable)."""

    issues: list[RowIssue] = []
    key = r.account_key

    def _issue(kind: IssueKind, detail: str) -> RowIssue:
        return RowIssue(account_key=key, row_id=r.row_id, date=r.day, kind=kind, detail=detail)

    if r.day is None:
        issues.append(_issue(IssueKind.MISSING_DATE, "row has no date"))
    if not r.has_credit and not r.has_debit:
        issues.append(_issue(IssueKind.BOTH_AMOUNTS_NULL, "credit and debit are both null"))

    usable = True
    for name, raw in (("credit", r.credit), ("interest", r.interest), ("debit", r.debit)):
        try:
            value = to_amount(raw)
        except ComputationError as e:
            issues.append(_issue(IssueKind.INVALID_AMOUNT, f"{name}: {e}"))
            usable = False
            continue
        if value is not None and value < ZERO:
            issues.append(_issue(IssueKind.NEGATIVE_AMOUNT, f"{name} is negative ({value})"))
    return issues, usable


def _check_progression(
    key: AccountKey,
    ordered: list[LedgerTransaction],
    tolerance: Decimal,
) -> tuple[list[Discrepancy], list[RowIssue]]:
    discrepancies: list[Discrepancy] = []
    issues: list[RowIssue] = []

    prev_observed = ZERO
    prev_expected = ZERO
    prev_flagged = False
    for r in ordered:
        if r.balance is None:
            issues.append(
                RowIssue(
                    account_key=key,
                    row_id=r.row_id,
                    date=r.day,
                    kind=IssueKind.MISSING_BALANCE,
                    detail="balance is null; treated as 0",
                )
            )
        observed = to_amount(r.balance) or ZERO
        net = r.net_amount
        expected = prev_observed + net
        flagged = abs((observed - prev_observed) - net) > tolerance
        if flagged and prev_flagged and abs(observed - (prev_expected + net)) <= tolerance:
            # The previous row was the outlier; this one continues the
            # correct sequence.
            flagged = False
            expected = prev_expected + net
        if flagged:
            diff = observed - expected
            discrepancies.append(
                Discrepancy(
                    account_key=key,
                    row_id=r.row_id,
                    date=r.day,
                    observed_balance=observed,
                    expected_balance=expected,
                    discrepancy_amount=diff,
                    magnitude=abs(diff),
                )
            )
        prev_observed = observed
        prev_expected = expected
        prev_flagged = flagged
    return discrepancies, issues


def verify_balances(
    transactions: Iterable[LedgerTransaction],
    *,
    tolerance: Decimal | float | str = DEFAULT_TOLERANCE,
) -> VerificationReport:
    """Audit stored balances without modifying any row.

    Reports, per run:

    - discrepancies between stored and expected balances, largest first;
    - accounts with no ``CWO`` opening entry, and accounts with more than one;
    - row issues: null date, both amounts null, negative or unparseable
      amounts, null balance, and rows tied under the ordering policy (the
      account's progression check is skipped in that case).
    """

    tolerance = parse_tolerance(tolerance)
    rows = list(transactions)
    groups = group_by_account(rows)

    discrepancies: list[Discrepancy] = []
    issues: list[RowIssue] = []
    missing_opening: list[AccountKey] = []
    multiple_openings: list[AccountKey] = []

    credit_rows = debit_rows = opening_rows = 0
    total_credits = total_debits = ZERO

    for key in sorted_account_keys(groups):
        account_rows = groups[key]
        if key is None or not is_valid_account_key(key):
            issues.append(
                RowIssue(
                    account_key=key,
                    kind=IssueKind.MISSING_ACCOUNT_KEY,
                    detail=f"{len(account_rows)} row(s) without a usable account key",
                )
            )
            continue

        usable = True
        openings = 0
        for r in account_rows:
            row_issues, ok = _row_issues(r)
            issues.extend(row_issues)
            usable = usable and ok
            openings += r.is_opening
            credit_rows += r.has_credit
            debit_rows += r.has_debit
            if ok:
                total_credits += r.credit_amount
                total_debits += r.debit_amount
        opening_rows += openings
        if openings == 0:
            missing_opening.append(key)
        elif openings > 1:
            multiple_openings.append(key)

        if not usable:
            continue
        try:
            ordered = order_account(account_rows)
        except OrderingTieError as e:
            issues.append(
                RowIssue(
                    account_key=key,
                    row_id=e.row_ids[0] if e.row_ids else None,
                    kind=IssueKind.UNRESOLVABLE_TIE,
                    detail=str(e),
                )
            )
            continue
        except DataIntegrityError:
            # Missing dates are already listed as row issues.
            continue

        found, balance_issues = _check_progression(key, ordered, tolerance)
        discrepancies.extend(found)
        issues.extend(balance_issues)

    discrepancies.sort(
        key=lambda d: (-d.magnitude, format_account_key(d.account_key), d.date or dt.date.min)
    )

    report = VerificationReport(
        total_records=len(rows),
        total_accounts=len(groups),
        opening_records=opening_rows,
        credit_transactions=credit_rows,
        debit_transactions=debit_rows,
        total_credits=total_credits,
        total_debits=total_debits,
        net_balance=total_credits - total_debits,
        tolerance=tolerance,
        discrepancy_count=len(discrepancies),
        discrepancies=discrepancies,
        accounts_missing_opening=missing_opening,
        accounts_with_multiple_openings=multiple_openings,
        issues=issues,
    )
    if discrepancies:
        worst = discrepancies[0]
        _logger.warning(
            "Balance verification found %d discrepancies; largest %s on account %s (%s)",
            len(discrepancies),
            worst.magnitude,
            format_account_key(worst.account_key),
            worst.date,
        )
    _logger.info(
        "Balance verification complete: records=%d accounts=%d openings=%d "
        "discrepancies=%d missing_opening=%d issues=%d",
        report.total_records,
        report.total_accounts,
        report.opening_records,
        report.discrepancy_count,
        len(missing_opening),
        len(issues),
    )
    return report


__all__ = ["DEFAULT_TOLERANCE", "verify_balances"]
