"""Key/value persistence for transactions, layout, payment modes and settings.

Each key holds one JSON document in the ``blobs`` table. Writes that depend
on the current value go through ``BlobStore.update`` so the read and the
write share a single database transaction. Stored rows that no longer
validate are hidden from readers but written back untouched.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from config import get_settings
from database import SessionFactory, SessionLocal, session_scope
from models import Blob, Transaction
from schemas import AppSettings, DashboardLayoutEntry, PaymentMode, TransactionRecord

logger = logging.getLogger(__name__)

TRANSACTIONS_KEY = "transactions"
LAYOUT_KEY = "dashboard_layout"
SETTINGS_KEY = "settings"
PAYMENT_MODES_KEY = "payment_modes"

DEFAULT_PAYMENT_MODES = (
    PaymentMode(id="1", name="Cash", shorthand="C"),
    PaymentMode(id="2", name="Credit Card", shorthand="CC"),
    PaymentMode(id="3", name="Debit", shorthand="D"),
)

LayoutListener = Callable[[list[DashboardLayoutEntry]], None]


class BlobStore:
    def __init__(self, session_factory: SessionFactory = SessionLocal) -> None:
        self._factory = session_factory
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with session_scope(self._factory) as session:
            blob = session.get(Blob, key)
            if blob is None:
                return default
            return json.loads(blob.value)

    def put(self, key: str, value: Any) -> None:
        self.update(key, lambda _current: value)

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        with self._lock, session_scope(self._factory) as session:
            blob = session.get(Blob, key, with_for_update=True)
            current = json.loads(blob.value) if blob is not None else default
            updated = fn(current)
            payload = json.dumps(updated)
            if blob is None:
                session.add(Blob(key=key, value=payload))
            else:
                blob.value = payload
        logger.info(f"blob_write: key={key} bytes={len(payload)}")
        return updated


def _parse_transactions(
    raw: Optional[list], rejected: Optional[list] = None
) -> list[Transaction]:
    transactions: list[Transaction] = []
    for idx, row in enumerate(raw or []):
        try:
            transactions.append(TransactionRecord.model_validate(row).to_domain())
        except ValidationError as exc:
            logger.warning(
                f"transaction_load: skipped row={idx} errors={exc.error_count()}"
            )
            if rejected is not None:
                rejected.append(row)
    return transactions


def _dump_transactions(transactions: Iterable[Transaction]) -> list[dict]:
    return [
        TransactionRecord.from_domain(t).model_dump(mode="json") for t in transactions
    ]


class TransactionStore:
    def __init__(self, blobs: BlobStore) -> None:
        self.blobs = blobs

    def load(self) -> tuple[Transaction, ...]:
        return tuple(_parse_transactions(self.blobs.get(TRANSACTIONS_KEY, [])))

    def save(self, transactions: Iterable[Transaction]) -> None:
        transactions = list(transactions)
        self.update(lambda _current: transactions)

    def update(
        self, fn: Callable[[list[Transaction]], list[Transaction]]
    ) -> tuple[Transaction, ...]:
        def apply(raw: list) -> list[dict]:
            rejected: list = []
            current = _parse_transactions(raw, rejected)
            return _dump_transactions(fn(current)) + rejected

        updated = self.blobs.update(TRANSACTIONS_KEY, apply, default=[])
        return tuple(_parse_transactions(updated))


def _parse_layout(
    raw: Optional[list], rejected: Optional[list] = None
) -> list[DashboardLayoutEntry]:
    entries: list[DashboardLayoutEntry] = []
    for row in raw or []:
        try:
            entries.append(DashboardLayoutEntry.model_validate(row))
        except ValidationError:
            logger.warning(f"layout_load: skipped entry={row!r}")
            if rejected is not None:
                rejected.append(row)
    return entries


class LayoutStore:
    """Persisted dashboard layout with a change channel.

    Listeners registered with ``subscribe`` are called with the new entries
    after every committed write through this store.
    """

    def __init__(self, blobs: BlobStore) -> None:
        self.blobs = blobs
        self._listeners: list[LayoutListener] = []

    def load(self) -> list[DashboardLayoutEntry]:
        return _parse_layout(self.blobs.get(LAYOUT_KEY, []))

    def save(self, entries: Iterable[DashboardLayoutEntry]) -> None:
        entries = list(entries)
        self.update(lambda _current: entries)

    def update(
        self,
        fn: Callable[[list[DashboardLayoutEntry]], list[DashboardLayoutEntry]],
    ) -> list[DashboardLayoutEntry]:
        def apply(raw: list) -> list[dict]:
            rejected: list = []
            current = _parse_layout(raw, rejected)
            return [entry.model_dump() for entry in fn(current)] + rejected

        entries = _parse_layout(self.blobs.update(LAYOUT_KEY, apply, default=[]))
        self._notify(entries)
        return entries

    def subscribe(self, listener: LayoutListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, entries: list[DashboardLayoutEntry]) -> None:
        for listener in list(self._listeners):
            listener(list(entries))


class SettingsStore:
    def __init__(self, blobs: BlobStore) -> None:
        self.blobs = blobs

    def defaults(self) -> AppSettings:
        settings = get_settings()
        return AppSettings(
            currency=settings.currency, currency_symbol=settings.currency_symbol
        )

    def load(self) -> AppSettings:
        raw = self.blobs.get(SETTINGS_KEY)
        if raw is None:
            return self.defaults()
        try:
            return AppSettings.model_validate(raw)
        except ValidationError:
            logger.warning("settings_load: stored settings invalid, using defaults")
            return self.defaults()

    def save(self, app_settings: AppSettings) -> AppSettings:
        self.blobs.put(SETTINGS_KEY, app_settings.model_dump(mode="json"))
        return app_settings


class PaymentModeStore:
    def __init__(self, blobs: BlobStore) -> None:
        self.blobs = blobs

    def load(self) -> list[PaymentMode]:
        raw = self.blobs.get(PAYMENT_MODES_KEY)
        if raw is None:
            return list(DEFAULT_PAYMENT_MODES)
        try:
            return [PaymentMode.model_validate(row) for row in raw]
        except (ValidationError, TypeError):
            logger.warning("payment_modes_load: stored modes invalid, using defaults")
            return list(DEFAULT_PAYMENT_MODES)

    def save(self, modes: Iterable[PaymentMode]) -> list[PaymentMode]:
        modes = list(modes)
        seen: set[str] = set()
        for mode in modes:
            if mode.id in seen:
                raise ValueError(f"Duplicate payment mode id: {mode.id}")
            seen.add(mode.id)
        self.blobs.put(PAYMENT_MODES_KEY, [m.model_dump(mode="json") for m in modes])
        logger.info(f"payment_modes_save: count={len(modes)}")
        return modes
