"""Ordering policy shared by the marker, the engine and the verifier.

Within one account, rows are ordered by the composite key

1. calendar day ascending (time components are ignored);
2. opening entries (``operator == 'CWO'``) before everything else that day;
3. same-day bucket: credit-like rows, then rows carrying both or neither
   amount, then debit-only rows;
4. ``sequence_id`` ascending.

The policy must yield a strict total order. Two rows with equal keys (for
example two rows lacking a ``sequence_id`` on the same day and bucket) make
the account's balance sequence undefined, so :func:`order_account` refuses
them with ``OrderingTieError`` instead of picking one.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Mapping
from enum import IntEnum

from .errors import MissingFieldError, OrderingTieError
from .models import AccountKey, LedgerTransaction, format_account_key


class SameDayBucket(IntEnum):
    CREDIT = 0
    FALLBACK = 1  # both a credit-like and a debit amount, or neither
    DEBIT = 2


type OrderingKey = tuple[dt.date, int, int, int | None]


def classify(record: LedgerTransaction) -> SameDayBucket:
    """Bucket a row for same-day ordering; ``None`` differs from zero here."""

    has_credit = record.has_credit
    has_debit = record.has_debit
    if has_credit and not has_debit:
        return SameDayBucket.CREDIT
    if has_debit and not has_credit:
        return SameDayBucket.DEBIT
    return SameDayBucket.FALLBACK


def ordering_key(record: LedgerTransaction) -> OrderingKey:
    day = record.day
    if day is None:
        raise MissingFieldError(
            f"row {record.row_id} of account {format_account_key(record.account_key)} "
            "has no date",
            account_key=record.account_key,
        )
    return (
        day,
        0 if record.is_opening else 1,
        int(classify(record)),
        record.sequence_id,
    )


def _sortable(key: OrderingKey) -> tuple:
    # ``None`` sequence ids sort after assigned ones; equality still holds
    # between two ``None`` ids so ties remain detectable.
    day, opening, bucket, seq = key
    return (day, opening, bucket, seq is None, seq if seq is not None else 0)


def _tie_error(
    k: OrderingKey, a: LedgerTransaction, b: LedgerTransaction
) -> OrderingTieError:
    return OrderingTieError(
        f"rows {a.row_id} and {b.row_id} of account "
        f"{format_account_key(b.account_key)} are indistinguishable "
        f"on {k[0].isoformat()} (no sequence id to break the tie)",
        account_key=b.account_key,
        row_ids=(a.row_id, b.row_id),
    )


def _keyed(records: Iterable[LedgerTransaction]) -> list[tuple[OrderingKey, LedgerTransaction]]:
    keyed = [(ordering_key(r), r) for r in records]
    keyed.sort(key=lambda kr: _sortable(kr[0]))
    return keyed


def order_account(records: Iterable[LedgerTransaction]) -> list[LedgerTransaction]:
    """Return one account's rows in policy order.

    Raises ``MissingFieldError`` for a row without a date and
    ``OrderingTieError`` when any two rows compare equal.
    """

    keyed = _keyed(records)
    for (k_prev, r_prev), (k_cur, r_cur) in zip(keyed, keyed[1:], strict=False):
        if k_prev == k_cur:
            raise _tie_error(k_cur, r_prev, r_cur)
    return [r for _k, r in keyed]


def first_in_order(records: Iterable[LedgerTransaction]) -> LedgerTransaction:
    """Return the row that opens the account.

    Only a tie for the first position is an error here; ties further down
    the sequence do not change which row comes first.
    """

    keyed = _keyed(records)
    if not keyed:
        raise ValueError("first_in_order() requires at least one row")
    if len(keyed) > 1 and keyed[0][0] == keyed[1][0]:
        raise _tie_error(keyed[1][0], keyed[0][1], keyed[1][1])
    return keyed[0][1]


def group_by_account(
    records: Iterable[LedgerTransaction],
) -> dict[AccountKey | None, list[LedgerTransaction]]:
    """Partition rows by account key, preserving first-seen order."""

    groups: dict[AccountKey | None, list[LedgerTransaction]] = {}
    for r in records:
        key = tuple(r.account_key) if r.account_key is not None else None
        groups.setdefault(key, []).append(r)
    return groups


def _blank(part: object) -> bool:
    return part is None or str(part).strip() == ""


def is_valid_account_key(key: AccountKey | None) -> bool:
    """A key names an account unless it is missing, empty or entirely blank.

    Individual parts may be null: ``("M002", None)`` is the member's account
    with no sub-account, and all such rows share one partition.
    """

    if not key:
        return False
    return not all(_blank(part) for part in key)


def sorted_account_keys(
    groups: Mapping[AccountKey | None, object],
) -> list[AccountKey | None]:
    """Deterministic processing order.

    Fully populated keys come first, then keys with a null part, then
    malformed keys.
    """

    def _key(k: AccountKey | None) -> tuple:
        if k is None:
            return (2, ())
        if not is_valid_account_key(k):
            rank = 2
        elif any(p is None for p in k):
            rank = 1
        else:
            rank = 0
        return (rank, tuple((p is None, "" if p is None else str(p)) for p in k))

    return sorted(groups, key=_key)


__all__ = [
    "OrderingKey",
    "SameDayBucket",
    "classify",
    "first_in_order",
    "group_by_account",
    "is_valid_account_key",
    "order_account",
    "ordering_key",
    "sorted_account_keys",
]
