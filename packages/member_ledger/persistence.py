"""Persistence integration for member_ledger.

Functions here read ledger rows from, and write computed columns back to, the
shared database owned by ``libs/db``. They rely on the ORM models in
``ledger_db.models`` (selected through a :class:`~member_ledger.layouts.TableLayout`)
and on a session provided by ``ledger_db.client``.

Scope:
- Load a table (or a subset of its accounts) as ``LedgerTransaction`` rows.
- Bulk-update ``balance``/``total`` and ``operator`` by primary key.

Rows are matched on the immutable ``id`` column only. SQLAlchemy errors are
not caught here; the caller's ``session_scope`` rolls back and re-raises.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import and_, or_, select, tuple_, update
from sqlalchemy.orm import Session

from .layouts import TableLayout
from .logging_setup import get_logger
from .models import AccountKey, BalanceUpdate, FlagUpdate, LedgerTransaction

_logger = get_logger("member_ledger.persistence")


def _col(layout: TableLayout, name: str) -> Any:
    return getattr(layout.model, name)


def _key_filter(layout: TableLayout, account_keys: Sequence[AccountKey]) -> Any:
    layout.check_account_keys(account_keys)
    cols = [_col(layout, c) for c in layout.key_columns]
    complete = [k for k in account_keys if all(p is not None for p in k)]
    partial = [k for k in account_keys if any(p is None for p in k)]

    clauses = []
    if complete:
        if len(cols) == 1:
            clauses.append(cols[0].in_([k[0] for k in complete]))
        else:
            clauses.append(tuple_(*cols).in_([tuple(k) for k in complete]))
    for k in partial:
        # NULL never matches IN; spell those keys out.
        clauses.append(
            and_(*(c.is_(None) if p is None else c == p for c, p in zip(cols, k, strict=True)))
        )
    return or_(*clauses)


def fetch_account_keys(session: Session, layout: TableLayout) -> list[AccountKey]:
    """Distinct account keys present in the layout's table."""

    cols = [_col(layout, c) for c in layout.key_columns]
    rows = session.execute(select(*cols).distinct()).all()
    return [tuple(r) for r in rows]


def fetch_transactions(
    session: Session,
    layout: TableLayout,
    *,
    account_keys: Sequence[AccountKey] | None = None,
) -> list[LedgerTransaction]:
    """Load rows as ``LedgerTransaction`` objects (unordered).

    ``row_id`` and ``sequence_id`` are both the row's ``id``: ids are assigned
    at insertion and never rewritten, so they double as the same-day
    tie-break.
    """

    names = [
        layout.id_column,
        *layout.key_columns,
        layout.date_column,
        layout.credit_column,
        layout.debit_column,
        layout.flag_column,
        layout.balance_column,
    ]
    if layout.interest_column:
        names.append(layout.interest_column)
    if layout.total_column:
        names.append(layout.total_column)
    stmt = select(*(_col(layout, n).label(n) for n in names))
    if account_keys is not None:
        if not account_keys:
            return []
        stmt = stmt.where(_key_filter(layout, account_keys))
    stmt = stmt.order_by(_col(layout, layout.id_column))

    out: list[LedgerTransaction] = []
    for row in session.execute(stmt).mappings():
        row_id = row[layout.id_column]
        out.append(
            LedgerTransaction(
                account_key=tuple(row[c] for c in layout.key_columns),
                date=row[layout.date_column],
                credit=row[layout.credit_column],
                debit=row[layout.debit_column],
                interest=row[layout.interest_column] if layout.interest_column else None,
                operator_flag=row[layout.flag_column],
                balance=row[layout.balance_column],
                total=row[layout.total_column] if layout.total_column else None,
                sequence_id=row_id,
                row_id=row_id,
            )
        )
    _logger.debug("fetched %d rows from %s", len(out), layout.table_name)
    return out


def _require_row_id(row_id: int | None) -> int:
    if row_id is None:
        raise ValueError("cannot write back a row without a row_id")
    return row_id


def apply_balance_updates(
    session: Session,
    layout: TableLayout,
    updates: Iterable[BalanceUpdate],
) -> int:
    """Write ``balance`` (and ``total`` where the layout has one) by primary key.

    Returns the number of rows written.
    """

    params: list[dict[str, Any]] = []
    for u in updates:
        values: dict[str, Any] = {
            layout.id_column: _require_row_id(u.row_id),
            layout.balance_column: u.balance,
        }
        if layout.total_column is not None:
            values[layout.total_column] = u.total
        params.append(values)

    if params:
        session.execute(update(layout.model), params)
    _logger.debug("wrote %d balances to %s", len(params), layout.table_name)
    return len(params)


def apply_flag_updates(
    session: Session,
    layout: TableLayout,
    updates: Iterable[FlagUpdate],
) -> int:
    """Write the ``operator`` flag by primary key; returns rows written."""

    params = [
        {layout.id_column: _require_row_id(u.row_id), layout.flag_column: u.operator_flag}
        for u in updates
    ]
    if params:
        session.execute(update(layout.model), params)
    _logger.debug("wrote %d operator flags to %s", len(params), layout.table_name)
    return len(params)


__all__ = [
    "apply_balance_updates",
    "apply_flag_updates",
    "fetch_account_keys",
    "fetch_transactions",
]
