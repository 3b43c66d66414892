from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import BigInteger, Date, Index, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# NUMERIC(18,2): 16 integer digits, 2 fractional.
AMOUNT = Numeric(18, 2)


class Base(DeclarativeBase):
    pass


# ---------------------------
# Savings / contributions: member_transactions
# ---------------------------


class MemberTransaction(Base):
    __tablename__ = "member_transactions"

    # Assigned at insertion and never rewritten; doubles as the same-day
    # tie-break and the write-back identity.
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    m_no: Mapped[str | None] = mapped_column(String(10), nullable=True)
    # Employee number / sub-account; only part of the key for the
    # ``member-sub`` layout.
    sub_account: Mapped[str | None] = mapped_column(String(10), nullable=True)
    date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    credit: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    debit: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    balance: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    operator: Mapped[str | None] = mapped_column(String(10), nullable=True)

    __table_args__ = (
        Index("ix_member_transactions_account_date", "m_no", "sub_account", "date"),
    )


# ---------------------------
# Loans: loan_transactions
# ---------------------------


class LoanTransaction(Base):
    __tablename__ = "loan_transactions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    m_no: Mapped[str | None] = mapped_column(String(10), nullable=True)
    loan_no: Mapped[str | None] = mapped_column(String(10), nullable=True)
    date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    principal: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    interest: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    debit: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    # Per-row principal + interest; not cumulative.
    total: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    balance: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    operator: Mapped[str | None] = mapped_column(String(10), nullable=True)

    __table_args__ = (
        Index("ix_loan_transactions_account_date", "m_no", "loan_no", "date"),
    )


__all__ = [
    "AMOUNT",
    "Base",
    "LoanTransaction",
    "MemberTransaction",
]
