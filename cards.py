"""Dashboard card registry.

Every card id maps to a renderer that reads the analytics snapshot, the
streak state and the formatting settings held in a ``CardContext``.
Rendering returns one of three content variants (stat, insight or chart)
or ``None`` when the card has nothing meaningful to show.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from functools import partial
from typing import Annotated, Callable, Literal, Optional, Union

from pydantic import BaseModel, Field

from analytics import AnalyticsSnapshot, NamedAmount
from privacy import Number, format_amount, mask_reason
from schemas import AppSettings
from streaks import StreakData


class CardType(str, Enum):
    stat = "stat"
    insight = "insight"
    chart = "chart"


class CardId(str, Enum):
    spent = "spent"
    income = "income"
    savings = "savings"
    this_week = "this-week"
    daily_avg = "daily-avg"
    avg_txn = "avg-txn"
    no_expense_streak = "no-expense-streak"
    spending_streak = "spending-streak"
    active_days = "active-days"
    most_frequent = "most-frequent"
    biggest_expense = "biggest-expense"
    best_day = "best-day"
    worst_day = "worst-day"
    daily_chart = "daily-chart"
    top_categories = "top-categories"
    needs_wants = "needs-wants"
    payment_mode = "payment-mode"
    monthly_trend = "monthly-trend"
    last_month = "last-month"


class Trend(BaseModel):
    value: float
    label: str
    is_positive: bool


class StatContent(BaseModel):
    kind: Literal["stat"] = "stat"
    label: str
    value: str
    subtitle: Optional[str] = None
    tone: Optional[Literal["income", "expense"]] = None
    trend: Optional[Trend] = None


class InsightContent(BaseModel):
    kind: Literal["insight"] = "insight"
    label: str
    value: str
    subtitle: Optional[str] = None
    detail: Optional[str] = None
    tone: Optional[Literal["income", "expense"]] = None


class ChartPoint(BaseModel):
    label: str
    values: dict[str, float]
    formatted: dict[str, str]


class ChartContent(BaseModel):
    kind: Literal["chart"] = "chart"
    title: str
    style: Literal["bar", "hbar", "ranked", "pie", "area"]
    points: list[ChartPoint]
    subtitle: Optional[str] = None


CardContent = Annotated[
    Union[StatContent, InsightContent, ChartContent], Field(discriminator="kind")
]


class RenderedCard(BaseModel):
    id: str
    type: CardType
    full_width: bool
    content: CardContent


@dataclass(frozen=True)
class CardContext:
    analytics: AnalyticsSnapshot
    streaks: Optional[StreakData]
    period_text: str
    format_amount: Callable[[Number], str]
    mask_reason: Callable[[str], str]

    @classmethod
    def create(
        cls,
        analytics: AnalyticsSnapshot,
        streaks: Optional[StreakData],
        settings: AppSettings,
        period_text: str,
    ) -> "CardContext":
        return cls(
            analytics=analytics,
            streaks=streaks,
            period_text=period_text,
            format_amount=partial(
                format_amount,
                currency_symbol=settings.currency_symbol,
                privacy=settings.privacy,
            ),
            mask_reason=partial(mask_reason, privacy=settings.privacy),
        )


Renderer = Callable[[CardContext], Optional[Union[StatContent, InsightContent, ChartContent]]]


@dataclass(frozen=True)
class CardSpec:
    id: CardId
    type: CardType
    render: Callable[[], Optional[Union[StatContent, InsightContent, ChartContent]]]
    full_width: bool = False

    @property
    def is_full_width(self) -> bool:
        return self.full_width or self.type == CardType.chart


def _days(count: int) -> str:
    return f"{count} {'day' if count == 1 else 'days'}"


def _short_date(day: date) -> str:
    return f"{day:%b} {day.day}"


def _point(ctx: CardContext, label: str, **values: Decimal) -> ChartPoint:
    return ChartPoint(
        label=label,
        values={name: float(value) for name, value in values.items()},
        formatted={name: ctx.format_amount(value) for name, value in values.items()},
    )


def ratio_text(ratio: float) -> str:
    if math.isinf(ratio):
        return "Needs only, no wants"
    return f"{ratio:.1f}x needs to wants"


def _spent(ctx: CardContext) -> StatContent:
    a = ctx.analytics
    return StatContent(
        label="Spent",
        value=ctx.format_amount(a.period_total),
        tone="expense",
        trend=Trend(
            value=a.percent_change,
            label="vs last month",
            is_positive=a.percent_change <= 0,
        ),
    )


def _income(ctx: CardContext) -> StatContent:
    return StatContent(
        label="Income",
        value=ctx.format_amount(ctx.analytics.period_income_total),
        tone="income",
        subtitle="Filtered results",
    )


def _savings(ctx: CardContext) -> StatContent:
    a = ctx.analytics
    positive = a.savings_this_period >= 0
    sign = "+" if positive else "-"
    rate = max(a.savings_rate, 0.0)
    return StatContent(
        label="Savings",
        value=f"{sign}{ctx.format_amount(abs(a.savings_this_period))}",
        tone="income" if positive else "expense",
        subtitle=f"{rate:.0f}% savings rate",
    )


def _this_week(ctx: CardContext) -> StatContent:
    a = ctx.analytics
    return StatContent(
        label="This Week",
        value=ctx.format_amount(a.this_week_total),
        trend=Trend(
            value=a.week_change,
            label="vs last week",
            is_positive=a.week_change <= 0,
        ),
    )


def _daily_avg(ctx: CardContext) -> StatContent:
    return StatContent(
        label="Daily Avg",
        value=ctx.format_amount(ctx.analytics.avg_daily_spending),
        subtitle=f"Per day {ctx.period_text}",
    )


def _avg_txn(ctx: CardContext) -> InsightContent:
    return InsightContent(
        label="Avg/Txn",
        value=ctx.format_amount(ctx.analytics.avg_transaction_size),
        subtitle="Per transaction",
    )


def _no_expense_streak(ctx: CardContext) -> InsightContent:
    days = ctx.streaks.no_expense_streak if ctx.streaks else 0
    return InsightContent(
        label="No-Expense Streak",
        value=_days(days),
        subtitle="Days without spending",
        tone="income",
    )


def _spending_streak(ctx: CardContext) -> InsightContent:
    days = ctx.streaks.spending_streak if ctx.streaks else 0
    return InsightContent(
        label="Spending Streak",
        value=_days(days),
        subtitle="Consecutive spending",
    )


def _active_days(ctx: CardContext) -> InsightContent:
    return InsightContent(
        label="Active Days",
        value=str(ctx.analytics.unique_spending_days),
        subtitle="Days with expenses",
    )


def _most_frequent(ctx: CardContext) -> Optional[InsightContent]:
    category = ctx.analytics.most_frequent_category
    if category is None:
        return None
    return InsightContent(
        label="Most Frequent",
        value=ctx.mask_reason(category.name),
        subtitle=f"{category.count} times {ctx.period_text}",
    )


def _biggest_expense(ctx: CardContext) -> Optional[InsightContent]:
    txn = ctx.analytics.biggest_expense
    day = ctx.analytics.biggest_expense_day
    if txn is None or day is None:
        return None
    via = f" via {txn.payment_mode}" if txn.payment_mode else ""
    return InsightContent(
        label="Biggest Expense",
        value=ctx.format_amount(txn.amount),
        detail=ctx.mask_reason(txn.reason or "Unknown"),
        subtitle=f"{_short_date(day)}{via}",
        tone="expense",
    )


def _best_day(ctx: CardContext) -> Optional[InsightContent]:
    best = ctx.analytics.best_day
    if best is None:
        return None
    return InsightContent(
        label="Best Day",
        value=ctx.format_amount(best.total),
        subtitle=_short_date(best.day),
        tone="income",
    )


def _worst_day(ctx: CardContext) -> Optional[InsightContent]:
    a = ctx.analytics
    # a lone spending day is already shown as the best day
    if a.worst_day is None or a.has_single_spending_day:
        return None
    return InsightContent(
        label="Worst Day",
        value=ctx.format_amount(a.worst_day.total),
        subtitle=_short_date(a.worst_day.day),
        tone="expense",
    )


def _daily_chart(ctx: CardContext) -> ChartContent:
    return ChartContent(
        title="Last 7 Days",
        style="bar",
        points=[
            _point(ctx, p.label, expense=p.expense, income=p.income)
            for p in ctx.analytics.daily_data
        ],
    )


def _ranked(ctx: CardContext, items: tuple[NamedAmount, ...]) -> list[ChartPoint]:
    top = items[0].value if items and items[0].value > 0 else Decimal(1)
    return [
        ChartPoint(
            label=ctx.mask_reason(item.name),
            values={"value": float(item.value), "share": float(item.value / top * 100)},
            formatted={"value": ctx.format_amount(item.value)},
        )
        for item in items
    ]


def _top_categories(ctx: CardContext) -> Optional[ChartContent]:
    items = ctx.analytics.top_categories
    if not items:
        return None
    return ChartContent(title="Top Spending", style="ranked", points=_ranked(ctx, items))


def _needs_wants(ctx: CardContext) -> Optional[ChartContent]:
    a = ctx.analytics
    if not a.necessity_breakdown:
        return None
    subtitle = None
    if a.needs_total > 0 or a.wants_total > 0:
        subtitle = ratio_text(a.needs_wants_ratio)
    return ChartContent(
        title="Needs vs Wants",
        style="pie",
        points=[_point(ctx, item.name, value=item.value) for item in a.necessity_breakdown],
        subtitle=subtitle,
    )


def _payment_mode(ctx: CardContext) -> Optional[ChartContent]:
    items = ctx.analytics.by_mode
    if not items:
        return None
    return ChartContent(
        title="By Payment Mode",
        style="hbar",
        points=[_point(ctx, item.name, value=item.value) for item in items],
    )


def _monthly_trend(ctx: CardContext) -> ChartContent:
    return ChartContent(
        title="6 Month Overview",
        style="area",
        points=[
            _point(ctx, p.label, income=p.income, expense=p.expense, savings=p.savings)
            for p in ctx.analytics.monthly_trend
        ],
    )


def _last_month(ctx: CardContext) -> StatContent:
    a = ctx.analytics
    arrow = "↓" if a.percent_change <= 0 else "↑"
    return StatContent(
        label="Last Month",
        value=ctx.format_amount(a.last_month_total),
        subtitle=f"Total spent, {arrow} {abs(a.percent_change):.0f}% this period",
        trend=Trend(
            value=a.percent_change,
            label="this period vs last month",
            is_positive=a.percent_change <= 0,
        ),
    )


REGISTRY: tuple[tuple[CardId, CardType, bool, Renderer], ...] = (
    (CardId.spent, CardType.stat, False, _spent),
    (CardId.income, CardType.stat, False, _income),
    (CardId.savings, CardType.stat, False, _savings),
    (CardId.this_week, CardType.stat, False, _this_week),
    (CardId.daily_avg, CardType.stat, False, _daily_avg),
    (CardId.avg_txn, CardType.insight, False, _avg_txn),
    (CardId.no_expense_streak, CardType.insight, False, _no_expense_streak),
    (CardId.spending_streak, CardType.insight, False, _spending_streak),
    (CardId.active_days, CardType.insight, False, _active_days),
    (CardId.most_frequent, CardType.insight, False, _most_frequent),
    (CardId.biggest_expense, CardType.insight, True, _biggest_expense),
    (CardId.best_day, CardType.insight, False, _best_day),
    (CardId.worst_day, CardType.insight, False, _worst_day),
    (CardId.daily_chart, CardType.chart, False, _daily_chart),
    (CardId.top_categories, CardType.chart, False, _top_categories),
    (CardId.needs_wants, CardType.chart, False, _needs_wants),
    (CardId.payment_mode, CardType.chart, False, _payment_mode),
    (CardId.monthly_trend, CardType.chart, False, _monthly_trend),
    (CardId.last_month, CardType.stat, True, _last_month),
)

CARD_IDS: tuple[str, ...] = tuple(card_id.value for card_id, *_ in REGISTRY)


def build_cards(ctx: CardContext) -> dict[str, CardSpec]:
    return {
        card_id.value: CardSpec(
            id=card_id,
            type=card_type,
            render=partial(renderer, ctx),
            full_width=full_width,
        )
        for card_id, card_type, full_width, renderer in REGISTRY
    }
