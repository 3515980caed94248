from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional, Sequence
from uuid import uuid4
from zoneinfo import ZoneInfo

from rapidfuzz.distance import Levenshtein

from aggregation import filter_by_type, sum_amounts, well_formed
from analytics import AnalyticsSnapshot, compute_analytics
from cards import CardContext, CardType, RenderedCard, build_cards
from config import get_settings
from csv_utils import export_transactions, parse_csv
from layout import LayoutReconciler
from models import Necessity, Transaction, TransactionType
from periods import Period, filter_period, period_text
from schemas import IngestTransactionIn, TransactionIn, TransactionUpdate
from storage import BlobStore, LayoutStore, SettingsStore, TransactionStore
from streaks import StreakData, calculate_streaks

logger = logging.getLogger(__name__)

QUICK_ADD_LOOKBACK_DAYS = 7
QUICK_ADD_MIN_USES = 2
QUICK_ADD_LIMIT = 4


def get_timezone() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def _not_found(transaction_id: str) -> ValueError:
    return ValueError(f"Transaction not found: {transaction_id}")


@dataclass(frozen=True)
class DayGroup:
    day: date
    transactions: tuple[Transaction, ...]
    day_total: Decimal


class TransactionService:
    def __init__(self, blobs: BlobStore, tz: Optional[ZoneInfo] = None) -> None:
        self.store = TransactionStore(blobs)
        self.tz = tz or get_timezone()

    def list_all(self) -> tuple[Transaction, ...]:
        return self.store.load()

    def for_period(self, period: Period) -> list[Transaction]:
        return filter_period(self.list_all(), period, self.tz)

    def get(self, transaction_id: str) -> Transaction:
        for txn in self.list_all():
            if txn.id == transaction_id:
                return txn
        raise _not_found(transaction_id)

    def add(self, data: TransactionIn) -> Transaction:
        txn = Transaction(
            id=str(uuid4()),
            date=data.date,
            amount=data.amount,
            type=data.type,
            reason=data.reason.strip(),
            payment_mode=data.payment_mode.strip(),
            necessity=data.necessity,
        )
        self.store.update(lambda current: [txn, *current])
        logger.info(f"transaction_add: id={txn.id} type={txn.type.value}")
        return txn

    def add_many(self, transactions: Sequence[Transaction]) -> int:
        self.store.update(lambda current: [*transactions, *current])
        logger.info(f"transaction_add_many: count={len(transactions)}")
        return len(transactions)

    def update(self, transaction_id: str, data: TransactionUpdate) -> Transaction:
        changes = data.model_dump(exclude_unset=True)
        for field in ("date", "type", "amount"):
            if field in changes and changes[field] is None:
                raise ValueError(f"{field} cannot be cleared")
        for field in ("reason", "payment_mode"):
            if field in changes:
                changes[field] = (changes[field] or "").strip()
        updated: list[Transaction] = []

        def apply(current: list[Transaction]) -> list[Transaction]:
            result = []
            for txn in current:
                if txn.id == transaction_id:
                    txn = txn.merged(**changes)
                    updated.append(txn)
                result.append(txn)
            if not updated:
                raise _not_found(transaction_id)
            return result

        self.store.update(apply)
        logger.info(f"transaction_update: id={transaction_id} fields={sorted(changes)}")
        return updated[0]

    def update_necessity(
        self, transaction_id: str, necessity: Optional[Necessity]
    ) -> Transaction:
        return self.update(transaction_id, TransactionUpdate(necessity=necessity))

    def delete(self, transaction_id: str) -> None:
        def apply(current: list[Transaction]) -> list[Transaction]:
            remaining = [t for t in current if t.id != transaction_id]
            if len(remaining) == len(current):
                raise _not_found(transaction_id)
            return remaining

        self.store.update(apply)
        logger.info(f"transaction_delete: id={transaction_id}")

    def grouped_by_day(self) -> list[DayGroup]:
        groups: dict[date, list[Transaction]] = {}
        for txn in well_formed(self.list_all()):
            groups.setdefault(txn.day(self.tz), []).append(txn)
        return [
            DayGroup(
                day=day,
                transactions=tuple(items),
                day_total=sum_amounts(filter_by_type(items, TransactionType.expense)),
            )
            for day, items in sorted(groups.items(), key=lambda item: item[0], reverse=True)
        ]

    def quick_add_suggestions(self, now: Optional[datetime] = None) -> list[Transaction]:
        """Expenses repeated recently with the same reason, mode and amount."""
        now = now or datetime.now(self.tz)
        since = now - timedelta(days=QUICK_ADD_LOOKBACK_DAYS)
        groups: dict[tuple[str, str, Decimal], list[Transaction]] = {}
        for txn in well_formed(self.list_all()):
            if not txn.is_expense or not _at_or_after(txn.date, since):
                continue
            key = (txn.reason.casefold(), txn.payment_mode, txn.amount)
            groups.setdefault(key, []).append(txn)
        frequent = [items for items in groups.values() if len(items) >= QUICK_ADD_MIN_USES]
        frequent.sort(key=len, reverse=True)
        return [items[0] for items in frequent[:QUICK_ADD_LIMIT]]


def _at_or_after(moment: datetime, since: datetime) -> bool:
    # naive and aware datetimes cannot be compared directly
    if (moment.tzinfo is None) != (since.tzinfo is None):
        moment = moment.replace(tzinfo=since.tzinfo)
    return moment >= since


class IngestReasonAmbiguous(ValueError):
    pass


class IngestService:
    """Quick-add path for voice and chat input."""

    def __init__(self, blobs: BlobStore, tz: Optional[ZoneInfo] = None) -> None:
        self.transactions = TransactionService(blobs, tz)
        self.tz = self.transactions.tz

    def known_reasons(self) -> list[str]:
        seen: dict[str, str] = {}
        for txn in self.transactions.list_all():
            if txn.is_expense and txn.reason:
                seen.setdefault(txn.reason.casefold(), txn.reason)
        return list(seen.values())

    def resolve_reason(self, raw: Optional[str]) -> str:
        reason = (raw or "").strip()
        if not reason:
            return "Other"
        input_lower = reason.casefold()
        known = self.known_reasons()
        for name in known:
            if name.casefold() == input_lower:
                return name

        best_distance: Optional[int] = None
        best: list[str] = []
        for name in known:
            dist = int(Levenshtein.distance(input_lower, name.casefold()))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [name]
            elif dist == best_distance:
                best.append(name)

        if best_distance is not None and best_distance <= 1:
            if len(best) > 1:
                options = ", ".join(sorted(best))
                raise IngestReasonAmbiguous(
                    f"Reason '{reason}' is ambiguous; matches: {options}"
                )
            return best[0]
        return reason

    def ingest_expense(self, data: IngestTransactionIn) -> Transaction:
        occurred_at = data.date or datetime.now(self.tz).replace(second=0, microsecond=0)
        return self.transactions.add(
            TransactionIn(
                date=occurred_at,
                type=TransactionType.expense,
                amount=data.amount,
                reason=self.resolve_reason(data.reason),
                payment_mode=(data.payment_mode or "").strip(),
                necessity=data.necessity,
            )
        )


class CSVService:
    def __init__(self, blobs: BlobStore, tz: Optional[ZoneInfo] = None) -> None:
        self.transactions = TransactionService(blobs, tz)

    def export(self, transactions: Sequence[Transaction]) -> str:
        return export_transactions(transactions)

    def commit(self, content: str) -> int:
        rows, errors = parse_csv(content)
        if errors:
            raise ValueError("; ".join(errors))
        imported = [
            Transaction(
                id=str(uuid4()),
                date=row.date,
                amount=row.amount,
                type=row.type,
                reason=row.reason,
                payment_mode=row.payment_mode,
                necessity=row.necessity,
            )
            for row in rows
        ]
        return self.transactions.add_many(imported)


class DashboardService:
    def __init__(
        self,
        blobs: BlobStore,
        layout_store: LayoutStore,
        tz: Optional[ZoneInfo] = None,
    ) -> None:
        self.transactions = TransactionService(blobs, tz)
        self.settings = SettingsStore(blobs)
        self.layout_store = layout_store
        self.tz = self.transactions.tz

    def analytics(
        self, period: Period, *, now: Optional[datetime] = None
    ) -> AnalyticsSnapshot:
        history = self.transactions.list_all()
        return compute_analytics(
            filter_period(history, period, self.tz),
            history,
            now=now,
            tz=self.tz,
            week_start=get_settings().week_start,
        )

    def streaks(self, *, now: Optional[datetime] = None) -> StreakData:
        return calculate_streaks(self.transactions.list_all(), now=now, tz=self.tz)

    def cards(
        self, period: Period, *, now: Optional[datetime] = None
    ) -> list[RenderedCard]:
        """Visible cards in layout order; cards with nothing to show are skipped."""
        now = now or datetime.now(self.tz)
        ctx = CardContext.create(
            analytics=self.analytics(period, now=now),
            streaks=self.streaks(now=now),
            settings=self.settings.load(),
            period_text=period_text(period.slug),
        )
        registry = build_cards(ctx)
        with LayoutReconciler(self.layout_store, tuple(registry)) as reconciler:
            ordered = reconciler.ordered_visible_ids()

        rendered: list[RenderedCard] = []
        for card_id in ordered:
            spec = registry.get(card_id)
            if spec is None:
                continue
            content = spec.render()
            if content is None:
                continue
            rendered.append(
                RenderedCard(
                    id=card_id,
                    type=CardType(spec.type),
                    full_width=spec.is_full_width,
                    content=content,
                )
            )
        return rendered
