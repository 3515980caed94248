import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import Necessity, Transaction, TransactionType


class TransactionIn(BaseModel):
    date: datetime
    type: TransactionType
    amount: Decimal = Field(..., ge=0)
    reason: str = Field(default="", max_length=200)
    payment_mode: str = Field(default="", max_length=100)
    necessity: Optional[Necessity] = None


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: Optional[datetime] = None
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)
    reason: Optional[str] = Field(default=None, max_length=200)
    payment_mode: Optional[str] = Field(default=None, max_length=100)
    necessity: Optional[Necessity] = None


class NecessityIn(BaseModel):
    necessity: Optional[Necessity] = None


class IngestTransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(..., ge=0)
    reason: Optional[str] = Field(default=None, max_length=200)
    payment_mode: Optional[str] = Field(default=None, max_length=100)
    necessity: Optional[Necessity] = None
    date: Optional[dt.datetime] = None


class TransactionRecord(BaseModel):
    """Stored and wire shape of a transaction."""

    id: str
    date: datetime
    amount: Decimal = Field(..., ge=0)
    type: TransactionType
    reason: str = ""
    payment_mode: str = ""
    necessity: Optional[Necessity] = None

    @classmethod
    def from_domain(cls, txn: Transaction) -> "TransactionRecord":
        return cls(
            id=txn.id,
            date=txn.date,
            amount=txn.amount,
            type=txn.type,
            reason=txn.reason,
            payment_mode=txn.payment_mode,
            necessity=txn.necessity,
        )

    def to_domain(self) -> Transaction:
        return Transaction(
            id=self.id,
            date=self.date,
            amount=self.amount,
            type=self.type,
            reason=self.reason,
            payment_mode=self.payment_mode,
            necessity=self.necessity,
        )


class DashboardLayoutEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    order: int
    visible: bool = True


class ReorderIn(BaseModel):
    ids: list[str]


class VisibilityIn(BaseModel):
    visible: bool


class PaymentMode(BaseModel):
    id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    shorthand: str = Field(default="", max_length=10)


class PrivacyMode(BaseModel):
    hide_amounts: bool = False
    hide_reasons: bool = False


class AppSettings(BaseModel):
    currency: str = Field(default="PKR", max_length=10)
    currency_symbol: str = Field(default="Rs.", max_length=10)
    privacy: PrivacyMode = Field(default_factory=PrivacyMode)


class CSVRow(BaseModel):
    date: datetime
    type: TransactionType
    amount: Decimal = Field(..., ge=0)
    reason: str
    payment_mode: str
    necessity: Optional[Necessity]
