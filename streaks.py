from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from aggregation import well_formed
from models import Transaction, local_day

MAX_LOOKBACK_DAYS = 365


@dataclass(frozen=True)
class StreakData:
    no_expense_streak: int = 0
    spending_streak: int = 0
    last_no_expense_date: Optional[date] = None
    last_spending_date: Optional[date] = None


def expense_days(
    transactions: Iterable[Transaction], tz: Optional[ZoneInfo] = None
) -> set[date]:
    return {t.day(tz) for t in well_formed(transactions) if t.is_expense}


def calculate_streaks(
    transactions: Iterable[Transaction],
    *,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> StreakData:
    """Count consecutive spending or expense-free days ending today.

    Scans the whole history. Exactly one counter is non-zero; with no
    expense history at all both stay at zero.
    """
    days = expense_days(transactions, tz)
    if not days:
        return StreakData()

    today = local_day(now or datetime.now(tz), tz)
    earliest = min(days)
    lookback = min(MAX_LOOKBACK_DAYS, (today - earliest).days + 1)

    spending_today = today in days
    streak = 1
    for offset in range(1, lookback):
        if ((today - timedelta(days=offset)) in days) != spending_today:
            break
        streak += 1

    if spending_today:
        return StreakData(spending_streak=streak, last_spending_date=today)
    return StreakData(no_expense_streak=streak, last_no_expense_date=today)
