"""Data models for ``member_ledger``.

Two families live here:

- ``LedgerTransaction``: the mutable in-memory row the marker, engine and
  verifier work on. It carries raw amounts exactly as the storage layer
  returned them; arithmetic always goes through :func:`to_amount`.
- Report models (pydantic): immutable, JSON-serializable summaries returned
  to callers and printed by the CLI.
"""

from __future__ import annotations

import datetime as dt
import decimal
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict

from .errors import ComputationError

# Operator value designating an account's opening entry.
OPENING_FLAG = "CWO"

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Rounds half-up to the cent; raises only when a value cannot be represented.
_AMOUNT_CONTEXT = decimal.Context(prec=38, rounding=ROUND_HALF_UP)

# ``(m_no,)``, ``(m_no, sub_account)`` or ``(m_no, loan_no)``. A ``None`` part
# is a NULL column and still names an account; only an all-null key is rejected.
AccountKey = tuple[str | None, ...]


def to_amount(raw: Any) -> Decimal | None:
    """Coerce a raw amount to a 2-place ``Decimal`` (``None`` stays ``None``).

    Floats go through ``str()`` so binary noise never enters a sum. Booleans,
    non-finite values and unparseable strings raise ``ComputationError``.
    """

    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ComputationError(f"amount must be numeric, got {raw!r}")
    if isinstance(raw, Decimal):
        d = raw
    elif isinstance(raw, int | float):
        d = Decimal(str(raw))
    elif isinstance(raw, str):
        s = raw.strip()
        if not s:
            return None
        try:
            d = Decimal(s)
        except InvalidOperation as e:
            raise ComputationError(f"amount is not a number: {raw!r}") from e
    else:
        raise ComputationError(f"unsupported amount type {type(raw).__name__}: {raw!r}")
    if not d.is_finite():
        raise ComputationError(f"amount is not finite: {raw!r}")
    try:
        return d.quantize(CENT, context=_AMOUNT_CONTEXT)
    except decimal.InvalidOperation as e:
        raise ComputationError(f"amount out of range: {raw!r}") from e


def format_account_key(key: AccountKey | None) -> str:
    if key is None:
        return "<none>"
    return "/".join("<null>" if part is None else str(part) for part in key)


# ---------------------------------------------------------------------------
# Core record
# ---------------------------------------------------------------------------


@dataclass(slots=True, eq=False)
class LedgerTransaction:
    """One ledger row scoped to an account.

    ``credit`` is the credit amount of savings tables and the principal of
    loan tables; ``interest`` is only used by loan tables. Null amounts count
    as zero in sums but still matter for same-day classification.
    """

    account_key: AccountKey | None
    date: dt.date | dt.datetime | None
    credit: Any = None
    debit: Any = None
    interest: Any = None
    operator_flag: str | None = None
    balance: Decimal | None = None
    total: Decimal | None = None
    sequence_id: int | None = None
    row_id: int | None = None

    @property
    def day(self) -> dt.date | None:
        """Calendar day; any time component is dropped."""
        if isinstance(self.date, dt.datetime):
            return self.date.date()
        return self.date

    @property
    def is_opening(self) -> bool:
        flag = self.operator_flag
        return flag is not None and flag.strip().upper() == OPENING_FLAG

    @property
    def has_credit(self) -> bool:
        return self.credit is not None or self.interest is not None

    @property
    def has_debit(self) -> bool:
        return self.debit is not None

    @property
    def credit_amount(self) -> Decimal:
        return (to_amount(self.credit) or ZERO) + (to_amount(self.interest) or ZERO)

    @property
    def debit_amount(self) -> Decimal:
        return to_amount(self.debit) or ZERO

    @property
    def net_amount(self) -> Decimal:
        return self.credit_amount - self.debit_amount


type Transactions = Iterable[LedgerTransaction]


def assign_sequence_ids(records: Iterable[LedgerTransaction]) -> int:
    """Give every record without a ``sequence_id`` the next free id.

    Ids are handed out in input order, after the largest id already present,
    so rows loaded in insertion order keep that order as their tie-break.
    Returns the number of records that received an id.
    """

    items = list(records)
    next_id = max((r.sequence_id for r in items if r.sequence_id is not None), default=0) + 1
    assigned = 0
    for r in items:
        if r.sequence_id is None:
            r.sequence_id = next_id
            next_id += 1
            assigned += 1
    return assigned


# ---------------------------------------------------------------------------
# Write-back payloads
# ---------------------------------------------------------------------------


class BalanceUpdate(NamedTuple):
    row_id: int | None
    balance: Decimal
    total: Decimal | None = None


class FlagUpdate(NamedTuple):
    row_id: int | None
    account_key: AccountKey | None
    operator_flag: str | None


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class IssueKind(str, Enum):
    BOTH_AMOUNTS_NULL = "both_amounts_null"
    NEGATIVE_AMOUNT = "negative_amount"
    INVALID_AMOUNT = "invalid_amount"
    MISSING_DATE = "missing_date"
    MISSING_ACCOUNT_KEY = "missing_account_key"
    MISSING_BALANCE = "missing_balance"
    UNRESOLVABLE_TIE = "unresolvable_tie"


class _Report(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class RowIssue(_Report):
    account_key: AccountKey | None
    row_id: int | None = None
    date: dt.date | None = None
    kind: IssueKind
    detail: str = ""


class AccountFailure(_Report):
    account_key: AccountKey | None
    kind: str
    message: str
    row_count: int = 0


class Discrepancy(_Report):
    account_key: AccountKey
    row_id: int | None = None
    date: dt.date | None = None
    observed_balance: Decimal
    expected_balance: Decimal
    discrepancy_amount: Decimal
    magnitude: Decimal


class RunSummary(_Report):
    accounts_processed: int = 0
    accounts_failed: int = 0
    total_records: int = 0
    earliest_date: dt.date | None = None
    latest_date: dt.date | None = None
    total_credits: Decimal = ZERO
    total_interest: Decimal = ZERO
    total_debits: Decimal = ZERO
    net_balance: Decimal = ZERO


class RecomputeReport(_Report):
    strategy: str
    summary: RunSummary
    failures: list[AccountFailure] = []


class OpeningReport(_Report):
    accounts_scanned: int = 0
    accounts_affected: int = 0
    rows_marked: int = 0
    rows_cleared: int = 0
    issues: list[RowIssue] = []


class VerificationReport(_Report):
    total_records: int = 0
    total_accounts: int = 0
    opening_records: int = 0
    credit_transactions: int = 0
    debit_transactions: int = 0
    total_credits: Decimal = ZERO
    total_debits: Decimal = ZERO
    net_balance: Decimal = ZERO
    tolerance: Decimal = CENT
    discrepancy_count: int = 0
    discrepancies: list[Discrepancy] = []
    accounts_missing_opening: list[AccountKey] = []
    accounts_with_multiple_openings: list[AccountKey] = []
    issues: list[RowIssue] = []

    @property
    def is_clean(self) -> bool:
        return not (
            self.discrepancies
            or self.accounts_missing_opening
            or self.accounts_with_multiple_openings
            or self.issues
        )


class AccountSummary(_Report):
    account_key: AccountKey
    transaction_count: int
    first_date: dt.date | None = None
    last_date: dt.date | None = None
    min_balance: Decimal | None = None
    max_balance: Decimal | None = None
    closing_balance: Decimal | None = None


class PipelineReport(_Report):
    table: str
    opening: OpeningReport
    recompute: RecomputeReport
    verification: VerificationReport


# ---------------------------------------------------------------------------
# Results (report + rows to write)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class OpeningMarkResult:
    report: OpeningReport
    updates: list[FlagUpdate] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RecomputeResult:
    """Engine output.

    ``updates`` holds one complete list per successfully recomputed account,
    in processing order; failed accounts are absent.
    """

    report: RecomputeReport
    updates: dict[AccountKey, list[BalanceUpdate]] = field(default_factory=dict)

    @property
    def failures(self) -> list[AccountFailure]:
        return self.report.failures

    @property
    def summary(self) -> RunSummary:
        return self.report.summary


__all__ = [
    "OPENING_FLAG",
    "AccountFailure",
    "AccountKey",
    "AccountSummary",
    "BalanceUpdate",
    "Discrepancy",
    "FlagUpdate",
    "IssueKind",
    "LedgerTransaction",
    "OpeningMarkResult",
    "OpeningReport",
    "PipelineReport",
    "RecomputeReport",
    "RecomputeResult",
    "RowIssue",
    "RunSummary",
    "Transactions",
    "VerificationReport",
    "assign_sequence_ids",
    "format_account_key",
    "to_amount",
]
