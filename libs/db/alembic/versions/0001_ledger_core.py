# ruff: noqa: I001
"""Member savings and member loan transaction tables.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-09-14
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _amount(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(18, 2), nullable=True)


def upgrade() -> None:
    # member_transactions: savings/contributions keyed by m_no (+ sub_account)
    op.create_table(
        "member_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("m_no", sa.String(10), nullable=True),
        sa.Column("sub_account", sa.String(10), nullable=True),
        sa.Column("date", sa.Date(), nullable=True),
        _amount("credit"),
        _amount("debit"),
        _amount("balance"),
        sa.Column("operator", sa.String(10), nullable=True),
    )
    op.create_index(
        "ix_member_transactions_account_date",
        "member_transactions",
        ["m_no", "sub_account", "date"],
        unique=False,
    )

    # loan_transactions: keyed by m_no + loan_no; total = principal + interest
    op.create_table(
        "loan_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("m_no", sa.String(10), nullable=True),
        sa.Column("loan_no", sa.String(10), nullable=True),
        sa.Column("date", sa.Date(), nullable=True),
        _amount("principal"),
        _amount("interest"),
        _amount("debit"),
        _amount("total"),
        _amount("balance"),
        sa.Column("operator", sa.String(10), nullable=True),
    )
    op.create_index(
        "ix_loan_transactions_account_date",
        "loan_transactions",
        ["m_no", "loan_no", "date"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_loan_transactions_account_date", table_name="loan_transactions")
    op.drop_table("loan_transactions")
    op.drop_index("ix_member_transactions_account_date", table_name="member_transactions")
    op.drop_table("member_transactions")
