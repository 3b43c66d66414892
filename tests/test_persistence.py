from __future__ import annotations

import datetime as dt
from decimal import Decimal
from pathlib import Path

import pytest
from ledger_db import LoanTransaction, MemberTransaction
from ledger_db.client import get_engine, reset_engine, session_scope
from sqlalchemy.exc import SQLAlchemyError

from member_ledger.layouts import LOAN, MEMBER, MEMBER_SUB, get_layout
from member_ledger.models import BalanceUpdate, FlagUpdate
from member_ledger.persistence import (
    apply_balance_updates,
    apply_flag_updates,
    fetch_account_keys,
    fetch_transactions,
)
from tests.helpers.db import bootstrap_sqlite_db, load_rows, seed_rows


def _member(m_no, sub_account, day, **amounts):
    return {"m_no": m_no, "sub_account": sub_account, "date": day, **amounts}


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    url = bootstrap_sqlite_db(tmp_path / "ledger.db")
    seed_rows(
        database_url=url,
        model=MemberTransaction,
        rows=[
            _member("M001", "E1", dt.date(2024, 1, 1), credit=Decimal("1000")),
            _member("M001", "E2", dt.date(2024, 1, 2), debit=Decimal("200")),
            _member("M002", None, dt.date(2024, 1, 3), credit=Decimal("5.5")),
        ],
    )
    seed_rows(
        database_url=url,
        model=LoanTransaction,
        rows=[
            {
                "m_no": "M001",
                "loan_no": "L1",
                "date": dt.date(2024, 1, 1),
                "principal": Decimal("5000"),
                "interest": Decimal("50"),
            },
        ],
    )
    return url


def test_get_layout_known_and_unknown():
    assert get_layout("member-sub") is MEMBER_SUB
    assert LOAN.has_total and not MEMBER.has_total
    with pytest.raises(KeyError, match="known: loan, member, member-sub"):
        get_layout("savings")


def test_fetch_maps_columns_and_ids(db_url: str):
    with session_scope(database_url=db_url) as session:
        rows = fetch_transactions(session, MEMBER)
    assert [r.account_key for r in rows] == [("M001",), ("M001",), ("M002",)]
    assert [r.row_id for r in rows] == [r.sequence_id for r in rows] == [1, 2, 3]
    assert rows[0].credit == Decimal("1000.00") and rows[0].debit is None
    assert rows[1].day == dt.date(2024, 1, 2)
    assert rows[0].interest is None and rows[0].total is None


def test_fetch_sub_account_and_loan_layouts(db_url: str):
    with session_scope(database_url=db_url) as session:
        sub = fetch_transactions(session, MEMBER_SUB)
        loan = fetch_transactions(session, LOAN)
    assert [r.account_key for r in sub] == [("M001", "E1"), ("M001", "E2"), ("M002", None)]
    [lr] = loan
    assert lr.account_key == ("M001", "L1")
    assert lr.credit == Decimal("5000.00")
    assert lr.interest == Decimal("50.00")
    assert lr.credit_amount == Decimal("5050.00")


def test_fetch_filtered_by_account_keys(db_url: str):
    with session_scope(database_url=db_url) as session:
        assert sorted(fetch_account_keys(session, MEMBER)) == [("M001",), ("M002",)]
        only = fetch_transactions(session, MEMBER, account_keys=[("M002",)])
        subs = fetch_transactions(
            session, MEMBER_SUB, account_keys=[("M001", "E2"), ("M002", None)]
        )
        none = fetch_transactions(session, MEMBER, account_keys=[])
    assert [r.row_id for r in only] == [3]
    assert [r.row_id for r in subs] == [2, 3]
    assert none == []


def test_apply_updates_by_primary_key(db_url: str):
    with session_scope(database_url=db_url) as session:
        n = apply_balance_updates(
            session,
            MEMBER,
            [BalanceUpdate(1, Decimal("1000.00")), BalanceUpdate(2, Decimal("800.00"))],
        )
        m = apply_flag_updates(session, MEMBER, [FlagUpdate(1, ("M001",), "CWO")])
        apply_balance_updates(session, LOAN, [BalanceUpdate(1, Decimal("5050"), Decimal("5050"))])
    assert (n, m) == (2, 1)

    rows = load_rows(database_url=db_url, model=MemberTransaction)
    assert [r["balance"] for r in rows] == [Decimal("1000.00"), Decimal("800.00"), None]
    assert [r["operator"] for r in rows] == ["CWO", None, None]
    [loan] = load_rows(database_url=db_url, model=LoanTransaction)
    assert loan["total"] == Decimal("5050.00")
    assert loan["balance"] == Decimal("5050.00")


def test_write_back_requires_row_id(db_url: str):
    with pytest.raises(ValueError):
        with session_scope(database_url=db_url) as session:
            apply_balance_updates(session, MEMBER, [BalanceUpdate(None, Decimal("1"))])


def test_storage_errors_propagate(tmp_path: Path):
    url = f"sqlite+pysqlite:///{tmp_path / 'empty.db'}"
    with pytest.raises(SQLAlchemyError):
        with session_scope(database_url=url) as session:
            fetch_transactions(session, MEMBER)


def test_layout_checks_account_key_width():
    MEMBER_SUB.check_account_keys([("M001", "E1"), ("M002", None)])
    with pytest.raises(ValueError, match="'M001' has 1 part"):
        MEMBER_SUB.check_account_keys([("M001",)])
    with pytest.raises(ValueError):
        with session_scope(database_url="sqlite://") as session:
            fetch_transactions(session, LOAN, account_keys=[("M001", "L1", "x")])


def test_engine_stays_bound_to_first_database(tmp_path: Path):
    other = f"sqlite+pysqlite:///{tmp_path / 'other.db'}"
    get_engine(database_url="sqlite://")
    with pytest.raises(RuntimeError, match="reset_engine"):
        get_engine(database_url=other)
    reset_engine()
    assert str(get_engine(database_url=other).url) == other
