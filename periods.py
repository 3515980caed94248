from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from aggregation import filter_by_date_range
from models import Transaction


@dataclass(frozen=True)
class Period:
    slug: str
    start: Optional[date]
    end: Optional[date]


@dataclass(frozen=True)
class Window:
    """Half-open calendar range: ``start`` inclusive, ``end`` exclusive."""

    start: date
    end: date

    @property
    def last_day(self) -> date:
        return self.end - date.resolution

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end


PERIOD_TEXT = {
    "this_month": "this month",
    "last_month": "last month",
    "this_year": "this year",
    "last_year": "last year",
    "all": "all time",
    "custom": "in range",
}


def period_text(slug: str) -> str:
    return PERIOD_TEXT.get(slug, "this month")


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def month_window(today: Optional[date] = None, months_ago: int = 0) -> Window:
    today = today or date.today()
    first = add_months(today.replace(day=1), -months_ago)
    return Window(first, add_months(first, 1))


def previous_month_window(today: Optional[date] = None) -> Window:
    return month_window(today, months_ago=1)


def week_window(
    today: Optional[date] = None, *, weeks_ago: int = 0, week_start: int = 6
) -> Window:
    """Seven-day window starting on ``week_start`` (Monday is 0)."""
    today = today or date.today()
    offset = (today.weekday() - week_start) % 7
    start = today - timedelta(days=offset + 7 * weeks_ago)
    return Window(start, start + timedelta(days=7))


def trailing_days_window(days: int, today: Optional[date] = None) -> Window:
    """The last ``days`` calendar days, today included."""
    if days < 1:
        raise ValueError("Trailing window needs at least one day")
    today = today or date.today()
    return Window(today - timedelta(days=days - 1), today + timedelta(days=1))


def resolve_period(
    period: Optional[str],
    start: Optional[str] = None,
    end: Optional[str] = None,
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if period == "all":
        return Period("all", None, None)
    if period == "last_month":
        window = previous_month_window(today)
        return Period("last_month", window.start, window.last_day)
    if period == "this_year":
        return Period("this_year", date(today.year, 1, 1), date(today.year, 12, 31))
    if period == "last_year":
        year = today.year - 1
        return Period("last_year", date(year, 1, 1), date(year, 12, 31))
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period and period != "this_month":
        raise ValueError(f"Unknown period '{period}'")

    window = month_window(today)
    return Period("this_month", window.start, window.last_day)


def filter_period(
    transactions: Sequence[Transaction],
    period: Period,
    tz: Optional[ZoneInfo] = None,
) -> list[Transaction]:
    return filter_by_date_range(transactions, period.start, period.end, tz)
