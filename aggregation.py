"""Reducers shared by the analytics engine and the services layer.

Every function here is pure: inputs are never mutated and mappings are
returned as read-only views over freshly built dictionaries.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from models import Necessity, Transaction, TransactionType

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

KeyFn = Callable[[Transaction], str]


def is_well_formed(txn: Transaction) -> bool:
    if not isinstance(txn.date, datetime):
        return False
    amount = txn.amount
    if isinstance(amount, bool) or not isinstance(amount, (Decimal, int, float)):
        return False
    if isinstance(amount, Decimal):
        if not amount.is_finite():
            return False
    elif not math.isfinite(amount):
        return False
    return amount >= 0


def well_formed(transactions: Iterable[Transaction]) -> list[Transaction]:
    kept: list[Transaction] = []
    dropped = 0
    for txn in transactions:
        if is_well_formed(txn):
            kept.append(txn)
        else:
            dropped += 1
    if dropped:
        logger.warning(f"aggregation: skipped_malformed={dropped}")
    return kept


def filter_by_type(
    transactions: Iterable[Transaction], txn_type: TransactionType
) -> list[Transaction]:
    return [t for t in transactions if t.type == txn_type]


def filter_by_date_range(
    transactions: Iterable[Transaction],
    start: Optional[date],
    end: Optional[date],
    tz: Optional[ZoneInfo] = None,
) -> list[Transaction]:
    """Keep transactions whose local day lies in ``[start, end]``.

    A ``None`` bound is open on that side.
    """
    result: list[Transaction] = []
    for txn in transactions:
        if not isinstance(txn.date, datetime):
            continue
        day = txn.day(tz)
        if start is not None and day < start:
            continue
        if end is not None and day > end:
            continue
        result.append(txn)
    return result


def sum_amounts(transactions: Iterable[Transaction]) -> Decimal:
    total = ZERO
    for txn in transactions:
        if is_well_formed(txn):
            total += Decimal(txn.amount)
    return total


def sum_by_necessity(
    transactions: Iterable[Transaction], necessity: Optional[Necessity]
) -> Decimal:
    return sum_amounts(t for t in transactions if t.necessity == necessity)


def _bucket(
    transactions: Iterable[Transaction],
    key_fn: KeyFn,
    value_fn: Callable[[Transaction], object],
    start: object,
) -> Mapping[str, object]:
    labels: dict[str, str] = {}
    totals: dict[str, object] = {}
    for txn in transactions:
        label = key_fn(txn)
        normalized = label.casefold()
        if normalized not in labels:
            labels[normalized] = label
            totals[normalized] = start
        totals[normalized] = totals[normalized] + value_fn(txn)
    return MappingProxyType({labels[k]: v for k, v in totals.items()})


def aggregate_by_key(
    transactions: Iterable[Transaction], key_fn: KeyFn
) -> Mapping[str, Decimal]:
    """Sum amounts per case-insensitive key, labelled with the first-seen casing."""
    return _bucket(
        (t for t in transactions if is_well_formed(t)),
        key_fn,
        lambda t: Decimal(t.amount),
        ZERO,
    )


def count_by_key(transactions: Iterable[Transaction], key_fn: KeyFn) -> Mapping[str, int]:
    return _bucket(transactions, key_fn, lambda t: 1, 0)


def rank_top(
    totals: Mapping[str, object], limit: Optional[int] = None
) -> list[tuple[str, object]]:
    """Descending by value; equal values keep their mapping order."""
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return ranked if limit is None else ranked[:limit]


def percent_change(current, previous) -> float:
    if previous <= 0:
        return 0.0
    return float((current - previous) / previous * 100)


def reason_key(txn: Transaction) -> str:
    return txn.reason or "Other"


def payment_mode_key(txn: Transaction) -> str:
    return txn.payment_mode


def first_by(
    transactions: Sequence[Transaction], better: Callable[[Transaction, Transaction], bool]
) -> Optional[Transaction]:
    """Reduce keeping the earliest record unless a later one is strictly better."""
    if not transactions:
        return None
    best = transactions[0]
    for txn in transactions[1:]:
        if better(txn, best):
            best = txn
    return best
