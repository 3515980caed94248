from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from aggregation import (
    aggregate_by_key,
    count_by_key,
    filter_by_date_range,
    filter_by_type,
    percent_change,
    rank_top,
    reason_key,
    sum_amounts,
    sum_by_necessity,
    well_formed,
)
from models import Necessity, Transaction, TransactionType


def _txn(
    txn_id: str,
    amount: str,
    txn_type: TransactionType = TransactionType.expense,
    *,
    day: int = 1,
    reason: str = "",
    necessity=None,
) -> Transaction:
    return Transaction(
        id=txn_id,
        date=datetime(2026, 10, day, 10, 0, tzinfo=timezone.utc),
        amount=Decimal(amount),
        type=txn_type,
        reason=reason,
        necessity=necessity,
    )


def test_expense_and_income_sums_add_up_to_total() -> None:
    transactions = [
        _txn("1", "10.50"),
        _txn("2", "200", TransactionType.income),
        _txn("3", "4.25"),
        _txn("4", "0", TransactionType.income),
    ]
    expenses = sum_amounts(filter_by_type(transactions, TransactionType.expense))
    income = sum_amounts(filter_by_type(transactions, TransactionType.income))
    assert expenses == Decimal("14.75")
    assert expenses + income == sum_amounts(transactions)


def test_sum_of_nothing_is_zero() -> None:
    assert sum_amounts([]) == 0


def test_filter_by_type_preserves_order() -> None:
    transactions = [_txn("a", "1"), _txn("b", "2", TransactionType.income), _txn("c", "3")]
    assert [t.id for t in filter_by_type(transactions, TransactionType.expense)] == [
        "a",
        "c",
    ]


def test_percent_change() -> None:
    assert percent_change(150, 100) == 50
    assert percent_change(50, 100) == -50
    assert percent_change(0, 0) == 0
    assert percent_change(Decimal("75"), 0) == 0
    assert percent_change(10, -5) == 0


def test_aggregate_by_key_is_case_insensitive_and_keeps_first_casing() -> None:
    transactions = [
        _txn("1", "10", reason="Food"),
        _txn("2", "20", reason="food"),
        _txn("3", "30", reason="FOOD"),
    ]
    assert aggregate_by_key(transactions, reason_key) == {"Food": Decimal("60")}


def test_aggregate_by_key_labels_follow_input_order() -> None:
    transactions = [
        _txn("1", "5", reason="grocery"),
        _txn("2", "7", reason="Rent"),
        _txn("3", "1", reason="Grocery"),
        _txn("4", "2"),
    ]
    totals = aggregate_by_key(transactions, reason_key)
    assert list(totals.items()) == [
        ("grocery", Decimal("6")),
        ("Rent", Decimal("7")),
        ("Other", Decimal("2")),
    ]


def test_aggregate_by_key_returns_read_only_mapping() -> None:
    totals = aggregate_by_key([_txn("1", "5", reason="Fuel")], reason_key)
    with pytest.raises(TypeError):
        totals["Fuel"] = Decimal("0")  # type: ignore[index]


def test_count_and_rank_keep_first_seen_on_ties() -> None:
    transactions = [
        _txn("1", "100", reason="Coffee"),
        _txn("2", "500", reason="Rent"),
        _txn("3", "5", reason="coffee"),
        _txn("4", "5", reason="Taxi"),
        _txn("5", "5", reason="taxi"),
    ]
    counts = count_by_key(transactions, reason_key)
    assert counts == {"Coffee": 2, "Rent": 1, "Taxi": 2}
    assert rank_top(counts) == [("Coffee", 2), ("Taxi", 2), ("Rent", 1)]
    assert rank_top(counts, 1) == [("Coffee", 2)]


def test_filter_by_date_range_is_inclusive() -> None:
    transactions = [_txn(str(day), "1", day=day) for day in (1, 2, 3, 4)]
    kept = filter_by_date_range(transactions, date(2026, 10, 2), date(2026, 10, 3))
    assert [t.id for t in kept] == ["2", "3"]
    assert len(filter_by_date_range(transactions, None, None)) == 4


def test_sum_by_necessity_splits_needs_wants_and_uncategorized() -> None:
    transactions = [
        _txn("1", "50", necessity=Necessity.need),
        _txn("2", "20", necessity=Necessity.want),
        _txn("3", "5"),
    ]
    assert sum_by_necessity(transactions, Necessity.need) == Decimal("50")
    assert sum_by_necessity(transactions, Necessity.want) == Decimal("20")
    assert sum_by_necessity(transactions, None) == Decimal("5")


def test_malformed_records_are_excluded_from_sums() -> None:
    negative = _txn("neg", "-10")
    undated = Transaction("bad", "not-a-date", Decimal("3"), TransactionType.expense)  # type: ignore[arg-type]
    good = _txn("ok", "7")

    assert sum_amounts([negative, undated, good]) == Decimal("7")
    assert well_formed([negative, undated, good]) == [good]
    assert filter_by_date_range([undated, good], None, None) == [good]
