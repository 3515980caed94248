from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class Necessity(str, Enum):
    need = "need"
    want = "want"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Blob(Base, TimestampMixin):
    """One JSON document per key; the whole persistence model of the app."""

    __tablename__ = "blobs"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)


def local_day(moment: datetime, tz: Optional[ZoneInfo] = None) -> date:
    """Calendar date of ``moment`` as seen in ``tz``.

    Naive datetimes are taken to already be local time.
    """
    if tz is None or moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz).date()


@dataclass(frozen=True)
class Transaction:
    id: str
    date: datetime
    amount: Decimal
    type: TransactionType
    reason: str = ""
    payment_mode: str = ""
    necessity: Optional[Necessity] = None

    def __post_init__(self) -> None:
        # necessity only carries meaning for expenses
        if self.type == TransactionType.income and self.necessity is not None:
            object.__setattr__(self, "necessity", None)

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.expense

    def day(self, tz: Optional[ZoneInfo] = None) -> date:
        return local_day(self.date, tz)

    def merged(self, **changes: object) -> "Transaction":
        return replace(self, **changes)
