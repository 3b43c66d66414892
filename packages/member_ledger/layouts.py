"""Table layouts: which ORM columns feed the ledger record.

A layout binds a logical ledger (``member``, ``member-sub``, ``loan``) to an
ORM model from ``ledger_db.models`` and names the attributes that supply the
account key, the amounts, the opening flag and the computed columns.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ledger_db.models import LoanTransaction, MemberTransaction


@dataclass(frozen=True, slots=True)
class TableLayout:
    name: str
    model: type
    key_columns: tuple[str, ...]
    credit_column: str
    debit_column: str
    interest_column: str | None = None
    flag_column: str = "operator"
    balance_column: str = "balance"
    total_column: str | None = None
    date_column: str = "date"
    id_column: str = "id"

    @property
    def has_total(self) -> bool:
        return self.total_column is not None

    @property
    def table_name(self) -> str:
        return self.model.__tablename__  # type: ignore[attr-defined]

    def check_account_keys(self, keys: Iterable[tuple[str | None, ...]]) -> None:
        """Raise ``ValueError`` unless every key has one part per key column."""

        width = len(self.key_columns)
        for key in keys:
            if len(key) != width:
                shown = "/".join("" if p is None else str(p) for p in key)
                raise ValueError(
                    f"account {shown!r} has {len(key)} part(s); table {self.name!r} "
                    f"is keyed by {width} ({'/'.join(self.key_columns)})"
                )


MEMBER = TableLayout(
    name="member",
    model=MemberTransaction,
    key_columns=("m_no",),
    credit_column="credit",
    debit_column="debit",
)

MEMBER_SUB = TableLayout(
    name="member-sub",
    model=MemberTransaction,
    key_columns=("m_no", "sub_account"),
    credit_column="credit",
    debit_column="debit",
)

LOAN = TableLayout(
    name="loan",
    model=LoanTransaction,
    key_columns=("m_no", "loan_no"),
    credit_column="principal",
    interest_column="interest",
    debit_column="debit",
    total_column="total",
)

LAYOUTS: dict[str, TableLayout] = {layout.name: layout for layout in (MEMBER, MEMBER_SUB, LOAN)}


def get_layout(name: str) -> TableLayout:
    try:
        return LAYOUTS[name]
    except KeyError:
        known = ", ".join(sorted(LAYOUTS))
        raise KeyError(f"unknown table layout {name!r} (known: {known})") from None


__all__ = ["LAYOUTS", "LOAN", "MEMBER", "MEMBER_SUB", "TableLayout", "get_layout"]
