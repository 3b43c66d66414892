"""Shared SQLAlchemy models registry for the ledger database.

Currently includes the member savings and member loan transaction tables used
by ``member_ledger``.
"""

from .ledger import Base, LoanTransaction, MemberTransaction

__all__ = [
    "Base",
    "LoanTransaction",
    "MemberTransaction",
]
