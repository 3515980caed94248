"""Derived dashboard metrics.

``compute_analytics`` turns an immutable transaction snapshot into an
``AnalyticsSnapshot``. It is deterministic for a given ``now`` and never
raises for empty, all-zero or malformed input: every numeric field degrades
to zero except ``needs_wants_ratio``, which is ``math.inf`` when there are
needs but no wants.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from aggregation import (
    ZERO,
    aggregate_by_key,
    count_by_key,
    filter_by_date_range,
    filter_by_type,
    first_by,
    payment_mode_key,
    percent_change,
    rank_top,
    reason_key,
    sum_amounts,
    sum_by_necessity,
    well_formed,
)
from models import Necessity, Transaction, TransactionType, local_day
from periods import Window, month_window, previous_month_window, trailing_days_window, week_window

TOP_CATEGORY_LIMIT = 5
DAILY_SERIES_DAYS = 7
MONTHLY_TREND_MONTHS = 6

UNBOUNDED = math.inf


@dataclass(frozen=True)
class NamedAmount:
    name: str
    value: Decimal


@dataclass(frozen=True)
class DailyPoint:
    day: date
    label: str
    expense: Decimal
    income: Decimal


@dataclass(frozen=True)
class MonthlyPoint:
    month: date
    label: str
    expense: Decimal
    income: Decimal
    savings: Decimal


@dataclass(frozen=True)
class DayTotal:
    day: date
    total: Decimal


@dataclass(frozen=True)
class CategoryCount:
    name: str
    count: int


@dataclass(frozen=True)
class AnalyticsSnapshot:
    period_total: Decimal
    last_month_total: Decimal
    period_income_total: Decimal
    percent_change: float
    needs_total: Decimal
    wants_total: Decimal
    uncategorized: Decimal
    savings_this_period: Decimal
    savings_rate: float
    this_week_total: Decimal
    last_week_total: Decimal
    week_change: float
    avg_daily_spending: Decimal
    transaction_count: int
    top_categories: tuple[NamedAmount, ...]
    by_mode: tuple[NamedAmount, ...]
    daily_data: tuple[DailyPoint, ...]
    monthly_trend: tuple[MonthlyPoint, ...]
    biggest_expense: Optional[Transaction]
    biggest_expense_day: Optional[date]
    most_frequent_category: Optional[CategoryCount]
    avg_transaction_size: Decimal
    unique_spending_days: int
    best_day: Optional[DayTotal]
    worst_day: Optional[DayTotal]
    needs_wants_ratio: float
    necessity_breakdown: tuple[NamedAmount, ...]

    @property
    def has_single_spending_day(self) -> bool:
        return self.best_day is not None and self.best_day is self.worst_day


def needs_wants_ratio(needs: Decimal, wants: Decimal) -> float:
    if wants > 0:
        return float(needs / wants)
    if needs > 0:
        return UNBOUNDED
    return 0.0


def _window_total(
    transactions: Sequence[Transaction],
    window: Window,
    txn_type: TransactionType,
    tz: Optional[ZoneInfo],
) -> Decimal:
    in_window = filter_by_date_range(transactions, window.start, window.last_day, tz)
    return sum_amounts(filter_by_type(in_window, txn_type))


def _daily_series(
    transactions: Sequence[Transaction], today: date, tz: Optional[ZoneInfo]
) -> tuple[DailyPoint, ...]:
    window = trailing_days_window(DAILY_SERIES_DAYS, today)
    expense: dict[date, Decimal] = {}
    income: dict[date, Decimal] = {}
    for txn in transactions:
        day = txn.day(tz)
        if not window.contains(day):
            continue
        bucket = expense if txn.is_expense else income
        bucket[day] = bucket.get(day, ZERO) + Decimal(txn.amount)

    points = []
    for offset in range(window.days):
        day = date.fromordinal(window.start.toordinal() + offset)
        points.append(
            DailyPoint(
                day=day,
                label=day.strftime("%a"),
                expense=expense.get(day, ZERO),
                income=income.get(day, ZERO),
            )
        )
    return tuple(points)


def _monthly_trend(
    transactions: Sequence[Transaction], today: date, tz: Optional[ZoneInfo]
) -> tuple[MonthlyPoint, ...]:
    points = []
    for months_ago in range(MONTHLY_TREND_MONTHS - 1, -1, -1):
        window = month_window(today, months_ago)
        expense = _window_total(transactions, window, TransactionType.expense, tz)
        income = _window_total(transactions, window, TransactionType.income, tz)
        points.append(
            MonthlyPoint(
                month=window.start,
                label=window.start.strftime("%b"),
                expense=expense,
                income=income,
                savings=income - expense,
            )
        )
    return tuple(points)


def _day_totals(
    expenses: Sequence[Transaction], tz: Optional[ZoneInfo]
) -> list[DayTotal]:
    totals: dict[date, Decimal] = {}
    for txn in expenses:
        day = txn.day(tz)
        totals[day] = totals.get(day, ZERO) + Decimal(txn.amount)
    return [DayTotal(day, total) for day, total in totals.items()]


def _span_days(transactions: Sequence[Transaction], tz: Optional[ZoneInfo]) -> int:
    if not transactions:
        return 1
    days = [t.day(tz) for t in transactions]
    return max(1, (max(days) - min(days)).days + 1)


def compute_analytics(
    period_transactions: Sequence[Transaction],
    all_transactions: Sequence[Transaction],
    *,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
    week_start: int = 6,
) -> AnalyticsSnapshot:
    """Build the dashboard metrics for one period.

    ``period_transactions`` is already filtered to the active period by the
    caller; ``all_transactions`` is the full history used for the previous
    month baseline and the six month trend. ``now`` defaults to the current
    time in ``tz``.
    """
    now = now or datetime.now(tz)
    today = local_day(now, tz)

    period = well_formed(period_transactions)
    history = well_formed(all_transactions)

    period_expenses = filter_by_type(period, TransactionType.expense)
    period_income = filter_by_type(period, TransactionType.income)

    period_total = sum_amounts(period_expenses)
    period_income_total = sum_amounts(period_income)
    last_month_total = _window_total(
        history, previous_month_window(today), TransactionType.expense, tz
    )

    needs_total = sum_by_necessity(period_expenses, Necessity.need)
    wants_total = sum_by_necessity(period_expenses, Necessity.want)
    uncategorized = sum_by_necessity(period_expenses, None)

    savings_this_period = period_income_total - period_total
    savings_rate = (
        float(savings_this_period / period_income_total * 100)
        if period_income_total > 0
        else 0.0
    )

    by_reason = aggregate_by_key(period_expenses, reason_key)
    top_categories = tuple(
        NamedAmount(name, value)
        for name, value in rank_top(by_reason, TOP_CATEGORY_LIMIT)
    )
    by_mode = tuple(
        NamedAmount(name, value)
        for name, value in aggregate_by_key(period_expenses, payment_mode_key).items()
    )

    this_week_total = _window_total(
        period, week_window(today, week_start=week_start), TransactionType.expense, tz
    )
    last_week_total = _window_total(
        period,
        week_window(today, weeks_ago=1, week_start=week_start),
        TransactionType.expense,
        tz,
    )

    transaction_count = len(period_expenses)
    avg_daily_spending = (
        period_total / _span_days(period, tz) if period_expenses else ZERO
    )
    avg_transaction_size = (
        period_total / transaction_count if transaction_count else ZERO
    )

    biggest_expense = first_by(period_expenses, lambda t, best: t.amount > best.amount)

    ranked_counts = rank_top(count_by_key(period_expenses, reason_key), 1)
    most_frequent_category = (
        CategoryCount(*ranked_counts[0]) if ranked_counts else None
    )

    day_totals = _day_totals(period_expenses, tz)
    best_day = None
    worst_day = None
    if day_totals:
        best_day = day_totals[0]
        worst_day = day_totals[0]
        for entry in day_totals[1:]:
            if entry.total < best_day.total:
                best_day = entry
            if entry.total > worst_day.total:
                worst_day = entry

    necessity_breakdown = tuple(
        NamedAmount(name, value)
        for name, value in (
            ("Needs", needs_total),
            ("Wants", wants_total),
            ("Other", uncategorized),
        )
        if value > 0
    )

    return AnalyticsSnapshot(
        period_total=period_total,
        last_month_total=last_month_total,
        period_income_total=period_income_total,
        percent_change=percent_change(period_total, last_month_total),
        needs_total=needs_total,
        wants_total=wants_total,
        uncategorized=uncategorized,
        savings_this_period=savings_this_period,
        savings_rate=savings_rate,
        this_week_total=this_week_total,
        last_week_total=last_week_total,
        week_change=percent_change(this_week_total, last_week_total),
        avg_daily_spending=avg_daily_spending,
        transaction_count=transaction_count,
        top_categories=top_categories,
        by_mode=by_mode,
        daily_data=_daily_series(period, today, tz),
        monthly_trend=_monthly_trend(history, today, tz),
        biggest_expense=biggest_expense,
        biggest_expense_day=biggest_expense.day(tz) if biggest_expense else None,
        most_frequent_category=most_frequent_category,
        avg_transaction_size=avg_transaction_size,
        unique_spending_days=len(day_totals),
        best_day=best_day,
        worst_day=worst_day,
        needs_wants_ratio=needs_wants_ratio(needs_total, wants_total),
        necessity_breakdown=necessity_breakdown,
    )
