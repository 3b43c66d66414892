"""Exception taxonomy for balance recomputation.

- ``DataIntegrityError`` and subclasses describe bad input rows. They are
  turned into report entries by the marker, engine and verifier and never
  escape a batch run.
- ``ComputationError`` aborts the single account being processed.
- Storage errors are SQLAlchemy's own and are not wrapped.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for errors raised by ``member_ledger``."""


class DataIntegrityError(LedgerError):
    """Input rows violate a precondition of the balance computation."""

    kind = "integrity"

    def __init__(self, message: str, *, account_key: Any = None) -> None:
        super().__init__(message)
        self.account_key = account_key


class OrderingTieError(DataIntegrityError):
    """Two rows of one account compare equal under the ordering policy."""

    kind = "unresolvable_tie"

    def __init__(
        self,
        message: str,
        *,
        account_key: Any = None,
        row_ids: tuple[int | None, ...] = (),
    ) -> None:
        super().__init__(message, account_key=account_key)
        self.row_ids = row_ids


class MissingFieldError(DataIntegrityError):
    """A row lacks a field required for ordering (account key or date)."""

    kind = "missing_field"


class ComputationError(LedgerError):
    """Arithmetic failure (overflow, amount coercion) for one account."""

    kind = "computation"

    def __init__(self, message: str, *, account_key: Any = None) -> None:
        super().__init__(message)
        self.account_key = account_key


__all__ = [
    "ComputationError",
    "DataIntegrityError",
    "LedgerError",
    "MissingFieldError",
    "OrderingTieError",
]
