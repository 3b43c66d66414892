"""Per-account summaries and plain-text rendering of run reports."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from .errors import DataIntegrityError
from .logging_setup import get_logger
from .models import (
    AccountSummary,
    LedgerTransaction,
    OpeningReport,
    PipelineReport,
    RecomputeReport,
    VerificationReport,
    format_account_key,
    to_amount,
)
from .ordering import group_by_account, is_valid_account_key, order_account, sorted_account_keys

_logger = get_logger("member_ledger.reports")


def summarize_accounts(transactions: Iterable[LedgerTransaction]) -> list[AccountSummary]:
    """Per-account row count, date range, balance range and closing balance.

    The closing balance is the stored balance of the account's last row in
    policy order; it is ``None`` when that order cannot be established.
    Accounts with a malformed key are left out.
    """

    groups = group_by_account(transactions)
    out: list[AccountSummary] = []
    for key in sorted_account_keys(groups):
        if key is None or not is_valid_account_key(key):
            continue
        rows = groups[key]
        days = [r.day for r in rows if r.day is not None]
        balances = [b for b in (to_amount(r.balance) for r in rows) if b is not None]
        try:
            closing = to_amount(order_account(rows)[-1].balance)
        except DataIntegrityError as e:
            _logger.warning("no closing balance for %s: %s", format_account_key(key), e)
            closing = None
        out.append(
            AccountSummary(
                account_key=key,
                transaction_count=len(rows),
                first_date=min(days) if days else None,
                last_date=max(days) if days else None,
                min_balance=min(balances) if balances else None,
                max_balance=max(balances) if balances else None,
                closing_balance=closing,
            )
        )
    return out


# ---- Text rendering ----------------------------------------------------------


def _fmt(value: Decimal | None) -> str:
    return "-" if value is None else f"{value:,.2f}"


def format_recompute_report(report: RecomputeReport) -> str:
    s = report.summary
    lines = [
        "Balance calculation complete",
        f"  strategy:           {report.strategy}",
        f"  accounts processed: {s.accounts_processed}",
        f"  accounts failed:    {s.accounts_failed}",
        f"  total records:      {s.total_records}",
        f"  earliest date:      {s.earliest_date or '-'}",
        f"  latest date:        {s.latest_date or '-'}",
        f"  total credits:      {_fmt(s.total_credits)}",
    ]
    if s.total_interest:
        lines.append(f"  total interest:     {_fmt(s.total_interest)}")
    lines += [
        f"  total debits:       {_fmt(s.total_debits)}",
        f"  net balance:        {_fmt(s.net_balance)}",
    ]
    for f in report.failures:
        lines.append(f"  FAILED {format_account_key(f.account_key)} ({f.kind}): {f.message}")
    return "\n".join(lines)


def format_opening_report(report: OpeningReport) -> str:
    lines = [
        "Opening balances marked",
        f"  records marked:    {report.rows_marked}",
        f"  records cleared:   {report.rows_cleared}",
        f"  accounts affected: {report.accounts_affected} of {report.accounts_scanned}",
    ]
    for issue in report.issues:
        lines.append(
            f"  SKIPPED {format_account_key(issue.account_key)} ({issue.kind.value}): "
            f"{issue.detail}"
        )
    return "\n".join(lines)


def format_verification_report(report: VerificationReport, *, limit: int | None = 20) -> str:
    """Render the verification statistics and the largest discrepancies.

    ``limit`` caps the discrepancy and issue listings (``None`` lists all).
    """

    lines = [
        "Balance verification",
        f"  total records:        {report.total_records}",
        f"  total accounts:       {report.total_accounts}",
        f"  opening records:      {report.opening_records}",
        f"  credit transactions:  {report.credit_transactions}",
        f"  debit transactions:   {report.debit_transactions}",
        f"  total credits:        {_fmt(report.total_credits)}",
        f"  total debits:         {_fmt(report.total_debits)}",
        f"  net balance:          {_fmt(report.net_balance)}",
        f"  tolerance:            {report.tolerance}",
        f"  discrepancies:        {report.discrepancy_count}",
        f"  missing opening:      {len(report.accounts_missing_opening)}",
        f"  multiple openings:    {len(report.accounts_with_multiple_openings)}",
        f"  row issues:           {len(report.issues)}",
    ]

    shown = report.discrepancies if limit is None else report.discrepancies[:limit]
    if shown:
        lines.append("")
        lines.append("account\trow\tdate\tobserved\texpected\tdiff")
        for d in shown:
            lines.append(
                "\t".join(
                    [
                        format_account_key(d.account_key),
                        "" if d.row_id is None else str(d.row_id),
                        "" if d.date is None else d.date.isoformat(),
                        _fmt(d.observed_balance),
                        _fmt(d.expected_balance),
                        _fmt(d.discrepancy_amount),
                    ]
                )
            )
        hidden = len(report.discrepancies) - len(shown)
        if hidden > 0:
            lines.append(f"... {hidden} more")

    for label, keys in (
        ("missing opening entry", report.accounts_missing_opening),
        ("multiple opening entries", report.accounts_with_multiple_openings),
    ):
        if keys:
            listed = keys if limit is None else keys[:limit]
            more = "" if len(listed) == len(keys) else f" (+{len(keys) - len(listed)} more)"
            lines.append(f"{label}: " + ", ".join(format_account_key(k) for k in listed) + more)

    issues = report.issues if limit is None else report.issues[:limit]
    for issue in issues:
        where = format_account_key(issue.account_key)
        if issue.row_id is not None:
            where += f" row {issue.row_id}"
        lines.append(f"  ISSUE {where} ({issue.kind.value}): {issue.detail}")
    return "\n".join(lines)


def format_account_summaries(summaries: Sequence[AccountSummary]) -> str:
    lines = ["account\trows\tfirst_date\tlast_date\tmin_balance\tmax_balance\tclosing_balance"]
    for s in summaries:
        lines.append(
            "\t".join(
                [
                    format_account_key(s.account_key),
                    str(s.transaction_count),
                    "" if s.first_date is None else s.first_date.isoformat(),
                    "" if s.last_date is None else s.last_date.isoformat(),
                    _fmt(s.min_balance),
                    _fmt(s.max_balance),
                    _fmt(s.closing_balance),
                ]
            )
        )
    return "\n".join(lines)


def format_pipeline_report(report: PipelineReport, *, limit: int | None = 20) -> str:
    return "\n\n".join(
        [
            f"Table: {report.table}",
            format_opening_report(report.opening),
            format_recompute_report(report.recompute),
            format_verification_report(report.verification, limit=limit),
        ]
    )


__all__ = [
    "format_account_summaries",
    "format_opening_report",
    "format_pipeline_report",
    "format_recompute_report",
    "format_verification_report",
    "summarize_accounts",
]
