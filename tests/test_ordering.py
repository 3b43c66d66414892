from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from member_ledger.errors import MissingFieldError, OrderingTieError
from member_ledger.models import LedgerTransaction, assign_sequence_ids
from member_ledger.ordering import (
    SameDayBucket,
    classify,
    first_in_order,
    group_by_account,
    is_valid_account_key,
    order_account,
    ordering_key,
    sorted_account_keys,
)


def _tx(day, *, seq, credit=None, debit=None, interest=None, op=None, key=("M001",)):
    return LedgerTransaction(
        account_key=key,
        date=day,
        credit=credit,
        debit=debit,
        interest=interest,
        operator_flag=op,
        sequence_id=seq,
        row_id=seq,
    )


D1 = dt.date(2024, 1, 1)
D2 = dt.date(2024, 1, 2)


def test_classify_distinguishes_null_from_zero():
    assert classify(_tx(D1, seq=1, credit=Decimal("0"))) is SameDayBucket.CREDIT
    assert classify(_tx(D1, seq=1, debit=Decimal("5"))) is SameDayBucket.DEBIT
    assert classify(_tx(D1, seq=1, credit=1, debit=1)) is SameDayBucket.FALLBACK
    assert classify(_tx(D1, seq=1)) is SameDayBucket.FALLBACK
    # Loan rows: interest alone is credit-like.
    assert classify(_tx(D1, seq=1, interest=Decimal("3.50"))) is SameDayBucket.CREDIT


def test_same_day_order_opening_credit_fallback_debit():
    debit = _tx(D1, seq=1, debit=50)
    both = _tx(D1, seq=2, credit=10, debit=10)
    credit = _tx(D1, seq=3, credit=100)
    opening = _tx(D1, seq=4, debit=1, op="CWO")
    ordered = order_account([debit, both, credit, opening])
    assert [r.sequence_id for r in ordered] == [4, 3, 2, 1]


def test_date_dominates_same_day_rules():
    later_credit = _tx(D2, seq=1, credit=5, op="CWO")
    earlier_debit = _tx(D1, seq=2, debit=5)
    assert order_account([later_credit, earlier_debit]) == [earlier_debit, later_credit]


def test_time_component_is_ignored():
    morning_debit = _tx(dt.datetime(2024, 1, 1, 8, 0), seq=1, debit=5)
    evening_credit = _tx(dt.datetime(2024, 1, 1, 20, 0), seq=2, credit=5)
    ordered = order_account([morning_debit, evening_credit])
    assert ordered == [evening_credit, morning_debit]
    assert ordering_key(morning_debit)[0] == D1


def test_lower_sequence_id_always_first():
    a = _tx(D1, seq=7, credit=1)
    b = _tx(D1, seq=3, credit=1)
    for _ in range(5):
        assert order_account([a, b]) == [b, a]
        assert order_account([b, a]) == [b, a]


def test_cwo_match_is_case_and_space_insensitive():
    flagged = _tx(D1, seq=9, debit=1, op=" cwo ")
    plain = _tx(D1, seq=1, credit=1)
    assert order_account([plain, flagged])[0] is flagged


def test_missing_sequence_ids_on_equal_keys_raise_tie():
    a = _tx(D1, seq=None, credit=1)
    b = _tx(D1, seq=None, credit=2)
    with pytest.raises(OrderingTieError) as exc:
        order_account([a, b])
    assert exc.value.account_key == ("M001",)


def test_missing_sequence_id_sorts_after_assigned_ones():
    a = _tx(D1, seq=None, credit=1)
    b = _tx(D1, seq=5, credit=1)
    assert order_account([a, b]) == [b, a]


def test_missing_date_raises():
    with pytest.raises(MissingFieldError):
        order_account([_tx(None, seq=1, credit=1)])


def test_first_in_order_ignores_ties_after_head():
    head = _tx(D1, seq=1, credit=1)
    t1 = _tx(D2, seq=None, credit=1)
    t2 = _tx(D2, seq=None, credit=1)
    assert first_in_order([t2, head, t1]) is head
    with pytest.raises(OrderingTieError):
        order_account([t2, head, t1])


def test_first_in_order_tie_at_head():
    with pytest.raises(OrderingTieError):
        first_in_order([_tx(D1, seq=None, credit=1), _tx(D1, seq=None, credit=1)])


def test_group_and_sorted_keys():
    rows = [
        _tx(D1, seq=1, credit=1, key=("M002",)),
        _tx(D1, seq=2, credit=1, key=(None,)),
        _tx(D1, seq=3, credit=1, key=("M001",)),
        _tx(D2, seq=4, credit=1, key=("M002",)),
    ]
    groups = group_by_account(rows)
    assert list(groups) == [("M002",), (None,), ("M001",)]
    assert [r.sequence_id for r in groups[("M002",)]] == [1, 4]
    assert sorted_account_keys(groups) == [("M001",), ("M002",), (None,)]


def test_assign_sequence_ids_continues_after_max():
    rows = [_tx(D1, seq=None), _tx(D1, seq=10), _tx(D1, seq=None)]
    assert assign_sequence_ids(rows) == 2
    assert [r.sequence_id for r in rows] == [11, 10, 12]
    assert assign_sequence_ids(rows) == 0


@pytest.mark.parametrize(
    "key,valid",
    [
        (("M002", None), True),
        (("M001", "E1"), True),
        ((None, None), False),
        (("  ", None), False),
        ((), False),
        (None, False),
    ],
)
def test_null_key_parts_still_name_an_account(key, valid):
    assert is_valid_account_key(key) is valid


def test_keys_with_null_parts_sort_after_populated_keys():
    groups = dict.fromkeys(
        [("M002", None), (None, None), ("M002", "E1"), ("M001", None), ("M001", "E1")]
    )
    assert sorted_account_keys(groups) == [
        ("M001", "E1"),
        ("M002", "E1"),
        ("M001", None),
        ("M002", None),
        (None, None),
    ]
