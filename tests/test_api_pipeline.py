from __future__ import annotations

import datetime as dt
from decimal import Decimal
from pathlib import Path

import pytest
from ledger_db import LoanTransaction, MemberTransaction

import member_ledger.api as api_mod
from member_ledger.api import (
    mark_table,
    recompute_table,
    run_pipeline,
    summarize_table,
    verify_table,
)
from member_ledger.models import IssueKind
from tests.helpers.db import bootstrap_sqlite_db, load_rows, seed_rows


def _member(m_no, day, *, credit=None, debit=None, operator=None, sub_account=None):
    return {
        "m_no": m_no,
        "sub_account": sub_account,
        "date": day,
        "credit": credit,
        "debit": debit,
        "operator": operator,
    }


def _loan(loan_no, day, **amounts):
    return {"m_no": "M001", "loan_no": loan_no, "date": day, **amounts}


@pytest.fixture
def member_db(tmp_path: Path) -> str:
    url = bootstrap_sqlite_db(tmp_path / "member.db")
    seed_rows(
        database_url=url,
        model=MemberTransaction,
        rows=[
            _member("M001", dt.date(2024, 1, 2), debit=Decimal("200")),
            _member("M002", dt.date(2024, 1, 1), credit=Decimal("50")),
            _member("M001", dt.date(2024, 1, 1), credit=Decimal("1000")),
            _member("M001", dt.date(2024, 1, 2), credit=Decimal("500")),
            _member("M002", dt.date(2024, 1, 1), debit=Decimal("20")),
            _member("M001", dt.date(2024, 1, 3), credit=Decimal("300")),
            _member("M003", None, credit=Decimal("1")),
        ],
    )
    return url


def _balances(url: str) -> dict[int, Decimal | None]:
    return {r["id"]: r["balance"] for r in load_rows(database_url=url, model=MemberTransaction)}


def test_run_pipeline_end_to_end(member_db: str):
    report = run_pipeline("member", database_url=member_db)

    assert report.table == "member"
    assert report.opening.rows_marked == 2
    assert [i.kind for i in report.opening.issues] == [IssueKind.MISSING_DATE]
    assert report.recompute.summary.accounts_processed == 2
    assert [f.account_key for f in report.recompute.failures] == [("M003",)]

    balances = _balances(member_db)
    assert [balances[i] for i in (3, 4, 1, 6)] == [
        Decimal("1000.00"),
        Decimal("1500.00"),
        Decimal("1300.00"),
        Decimal("1600.00"),
    ]
    assert (balances[2], balances[5]) == (Decimal("50.00"), Decimal("30.00"))
    assert balances[7] is None

    rows = load_rows(database_url=member_db, model=MemberTransaction)
    operators = {r["id"]: r["operator"] for r in rows}
    assert operators == {1: None, 2: "CWO", 3: "CWO", 4: None, 5: None, 6: None, 7: None}

    v = report.verification
    assert v.discrepancy_count == 0
    assert v.accounts_missing_opening == [("M003",)]
    assert v.opening_records == 2


def test_recompute_commits_per_chunk_and_is_idempotent(member_db: str, monkeypatch):
    commits: list[int] = []
    real = api_mod.apply_balance_updates

    def _spy(session, layout, updates):
        n = real(session, layout, updates)
        commits.append(n)
        return n

    monkeypatch.setattr(api_mod, "apply_balance_updates", _spy)
    first = recompute_table("member", database_url=member_db, batch_size=1)
    snapshot = _balances(member_db)
    second = recompute_table("member", database_url=member_db, batch_size=1, workers=2)

    # One write per account chunk: M001, M002, M003 (failed, nothing written).
    assert commits == [4, 2, 0, 4, 2, 0]
    assert _balances(member_db) == snapshot
    assert first.summary == second.summary
    assert first.summary.total_records == 7
    assert first.summary.total_credits == Decimal("1850.00")
    assert first.summary.total_debits == Decimal("220.00")


def test_verify_table_finds_corruption(member_db: str):
    recompute_table("member", database_url=member_db)
    seed_rows(
        database_url=member_db,
        model=MemberTransaction,
        rows=[_member("M002", dt.date(2024, 1, 5), credit=Decimal("10"))],
    )
    report = verify_table("member", database_url=member_db, tolerance="0.01")
    [d] = report.discrepancies
    assert d.row_id == 8
    assert d.expected_balance == Decimal("40.00")
    assert d.observed_balance == Decimal("0.00")


def test_mark_table_clear_stale(member_db: str):
    seed_rows(
        database_url=member_db,
        model=MemberTransaction,
        rows=[_member("M002", dt.date(2024, 3, 1), credit=Decimal("1"), operator="CWO")],
    )
    report = mark_table("member", database_url=member_db, clear_stale=True)
    assert report.rows_cleared == 1
    rows = load_rows(database_url=member_db, model=MemberTransaction)
    flagged = [r["id"] for r in rows if r["operator"]]
    assert flagged == [2, 3]


def test_summarize_table_filters_accounts(member_db: str):
    recompute_table("member", database_url=member_db)
    [s] = summarize_table("member", database_url=member_db, account_keys=[("M001",)])
    assert s.account_key == ("M001",)
    assert s.transaction_count == 4
    assert s.closing_balance == Decimal("1600.00")


def test_loan_layout_pipeline(tmp_path: Path):
    url = bootstrap_sqlite_db(tmp_path / "loan.db")
    seed_rows(
        database_url=url,
        model=LoanTransaction,
        rows=[
            _loan("L1", dt.date(2024, 1, 1), principal=Decimal("1000")),
            _loan("L1", dt.date(2024, 2, 1), interest=Decimal("12.5")),
            _loan("L1", dt.date(2024, 2, 1), debit=Decimal("100")),
            _loan("L2", dt.date(2024, 1, 1), principal=Decimal("300")),
        ],
    )
    report = run_pipeline("loan", database_url=url, strategy="incremental")
    assert report.recompute.strategy == "incremental"
    assert report.verification.is_clean

    rows = load_rows(database_url=url, model=LoanTransaction)
    assert [r["balance"] for r in rows] == [
        Decimal("1000.00"),
        Decimal("1012.50"),
        Decimal("912.50"),
        Decimal("300.00"),
    ]
    assert [r["total"] for r in rows] == [
        Decimal("1000.00"),
        Decimal("12.50"),
        Decimal("0.00"),
        Decimal("300.00"),
    ]
    assert report.recompute.summary.total_interest == Decimal("12.50")


def test_member_sub_pipeline_with_null_sub_account(tmp_path: Path):
    url = bootstrap_sqlite_db(tmp_path / "sub.db")
    seed_rows(
        database_url=url,
        model=MemberTransaction,
        rows=[
            _member("M002", dt.date(2024, 1, 1), credit=Decimal("10")),
            _member("M002", dt.date(2024, 1, 2), credit=Decimal("5")),
            _member("M002", dt.date(2024, 1, 1), credit=Decimal("7"), sub_account="E1"),
        ],
    )

    report = run_pipeline("member-sub", database_url=url, batch_size=1)

    assert report.opening.rows_marked == 2
    assert report.opening.issues == []
    assert report.recompute.failures == []
    assert report.recompute.summary.accounts_processed == 2
    assert report.verification.is_clean

    rows = load_rows(database_url=url, model=MemberTransaction)
    assert [r["balance"] for r in rows] == [Decimal("10.00"), Decimal("15.00"), Decimal("7.00")]
    assert [r["operator"] for r in rows] == ["CWO", None, "CWO"]

    [s] = summarize_table("member-sub", database_url=url, account_keys=[("M002", None)])
    assert s.closing_balance == Decimal("15.00")


def test_summarize_table_rejects_wrong_key_width(member_db: str):
    with pytest.raises(ValueError, match="keyed by 2"):
        summarize_table("member-sub", database_url=member_db, account_keys=[("M001",)])
    with pytest.raises(ValueError, match="keyed by 1"):
        summarize_table("member", database_url=member_db, account_keys=[("M001", "E1")])
