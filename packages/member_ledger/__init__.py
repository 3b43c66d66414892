"""Public interface for the ``member_ledger`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
The table-level functions (``mark_table`` and friends) need ``ledger_db`` and
a database; the in-memory components work on plain ``LedgerTransaction``
lists.
"""

from .api import (
    mark_table,
    recompute_table,
    run_pipeline,
    summarize_table,
    verify_table,
)
from .engine import BalanceStrategy, recompute_balances
from .errors import (
    ComputationError,
    DataIntegrityError,
    LedgerError,
    MissingFieldError,
    OrderingTieError,
)
from .layouts import TableLayout, get_layout
from .models import (
    OPENING_FLAG,
    AccountFailure,
    AccountKey,
    AccountSummary,
    BalanceUpdate,
    Discrepancy,
    FlagUpdate,
    IssueKind,
    LedgerTransaction,
    OpeningMarkResult,
    OpeningReport,
    PipelineReport,
    RecomputeReport,
    RecomputeResult,
    RowIssue,
    RunSummary,
    VerificationReport,
    assign_sequence_ids,
)
from .opening import mark_opening_balances
from .ordering import group_by_account, order_account, ordering_key, sorted_account_keys
from .reports import summarize_accounts
from .verifier import verify_balances

__all__ = [
    # API
    "mark_table",
    "recompute_table",
    "run_pipeline",
    "summarize_table",
    "verify_table",
    # Core components
    "assign_sequence_ids",
    "group_by_account",
    "mark_opening_balances",
    "order_account",
    "ordering_key",
    "recompute_balances",
    "sorted_account_keys",
    "summarize_accounts",
    "verify_balances",
    "BalanceStrategy",
    "TableLayout",
    "get_layout",
    # Models
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
    "VerificationReport",
    # Errors
    "ComputationError",
    "DataIntegrityError",
    "LedgerError",
    "MissingFieldError",
    "OrderingTieError",
]
