from __future__ import annotations

import datetime as dt

from member_ledger.models import OPENING_FLAG, FlagUpdate, IssueKind, LedgerTransaction
from member_ledger.opening import mark_opening_balances


def _tx(key, day, seq, *, credit=None, debit=None, op=None):
    return LedgerTransaction(
        account_key=key,
        date=day,
        credit=credit,
        debit=debit,
        operator_flag=op,
        sequence_id=seq,
        row_id=seq,
    )


def _flags(rows):
    return {r.row_id: r.operator_flag for r in rows}


def test_marks_first_row_of_each_account():
    rows = [
        _tx(("M001",), dt.date(2024, 1, 2), 1, credit=500),
        _tx(("M001",), dt.date(2024, 1, 1), 2, credit=1000),
        _tx(("M002",), dt.date(2024, 2, 1), 3, debit=10),
        _tx(("M002",), dt.date(2024, 2, 1), 4, credit=10),
    ]
    result = mark_opening_balances(rows)

    assert _flags(rows) == {1: None, 2: OPENING_FLAG, 3: None, 4: OPENING_FLAG}
    assert result.report.rows_marked == 2
    assert result.report.accounts_affected == 2
    assert result.report.accounts_scanned == 2
    assert result.updates == [
        FlagUpdate(2, ("M001",), OPENING_FLAG),
        FlagUpdate(4, ("M002",), OPENING_FLAG),
    ]


def test_every_account_ends_with_exactly_one_opening_on_first_row():
    rows = [
        _tx(("A",), dt.date(2024, 3, d), seq, credit=1)
        for seq, d in enumerate([5, 3, 3, 9], start=1)
    ] + [_tx(("B",), dt.date(2024, 1, 1), 10, debit=1)]
    mark_opening_balances(rows)

    openings = [r for r in rows if r.is_opening]
    assert sorted(r.row_id for r in openings) == [2, 10]


def test_already_marked_account_is_left_untouched():
    rows = [
        _tx(("M001",), dt.date(2024, 1, 1), 1, credit=1000, op="CWO"),
        _tx(("M001",), dt.date(2024, 1, 2), 2, credit=5),
    ]
    result = mark_opening_balances(rows)
    assert result.updates == []
    assert result.report.rows_marked == 0
    assert result.report.accounts_affected == 0

    # Re-running is a no-op as well.
    again = mark_opening_balances(rows)
    assert again.updates == []


def test_overwrites_incorrect_flag_on_first_row():
    rows = [_tx(("M001",), dt.date(2024, 1, 1), 1, credit=10, op="ADM")]
    result = mark_opening_balances(rows)
    assert rows[0].operator_flag == OPENING_FLAG
    assert result.report.rows_marked == 1


def test_stale_flags_kept_unless_clear_stale():
    def _rows():
        return [
            _tx(("M001",), dt.date(2024, 1, 1), 1, credit=10),
            _tx(("M001",), dt.date(2024, 1, 5), 2, credit=10, op="CWO"),
        ]

    kept = _rows()
    mark_opening_balances(kept)
    assert _flags(kept) == {1: OPENING_FLAG, 2: "CWO"}

    cleared = _rows()
    result = mark_opening_balances(cleared, clear_stale=True)
    assert _flags(cleared) == {1: OPENING_FLAG, 2: None}
    assert result.report.rows_cleared == 1
    assert FlagUpdate(2, ("M001",), None) in result.updates


def test_tie_at_head_is_reported_not_guessed():
    rows = [
        _tx(("M001",), dt.date(2024, 1, 1), None, credit=10),
        _tx(("M001",), dt.date(2024, 1, 1), None, credit=20),
        _tx(("M002",), dt.date(2024, 1, 1), 3, credit=20),
    ]
    result = mark_opening_balances(rows)

    assert rows[0].operator_flag is None and rows[1].operator_flag is None
    assert rows[2].operator_flag == OPENING_FLAG
    [issue] = result.report.issues
    assert issue.kind is IssueKind.UNRESOLVABLE_TIE
    assert issue.account_key == ("M001",)


def test_missing_date_and_missing_key_are_reported():
    rows = [
        _tx(("M001",), None, 1, credit=10),
        _tx((None,), dt.date(2024, 1, 1), 2, credit=10),
    ]
    result = mark_opening_balances(rows)
    kinds = {i.kind for i in result.report.issues}
    assert kinds == {IssueKind.MISSING_DATE, IssueKind.MISSING_ACCOUNT_KEY}
    assert result.updates == []
