from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from csv_utils import parse_amount, parse_csv, sanitize_csv_value
from database import build_engine, create_schema, make_session_factory
from models import Necessity, TransactionType
from periods import resolve_period
from schemas import IngestTransactionIn, PaymentMode, TransactionIn, TransactionUpdate
from services import (
    CSVService,
    IngestReasonAmbiguous,
    IngestService,
    TransactionService,
)
from storage import (
    DEFAULT_PAYMENT_MODES,
    PAYMENT_MODES_KEY,
    TRANSACTIONS_KEY,
    BlobStore,
    PaymentModeStore,
    TransactionStore,
)

UTC = ZoneInfo("UTC")


def _blobs() -> BlobStore:
    engine = build_engine("sqlite:///:memory:")
    create_schema(engine)
    return BlobStore(make_session_factory(engine))


def _expense(amount: str, day: int = 1, reason: str = "", **kwargs) -> TransactionIn:
    return TransactionIn(
        date=datetime(2026, 10, day, 10, 0, tzinfo=timezone.utc),
        type=TransactionType.expense,
        amount=Decimal(amount),
        reason=reason,
        **kwargs,
    )


def test_add_persists_newest_first() -> None:
    service = TransactionService(_blobs(), UTC)
    first = service.add(_expense("10", reason="  Tea "))
    second = service.add(_expense("20", reason="Lunch"))

    stored = service.list_all()
    assert [t.id for t in stored] == [second.id, first.id]
    assert stored[1].reason == "Tea"
    assert stored[1].amount == Decimal("10")
    assert service.get(first.id) == stored[1]


def test_update_changes_only_given_fields() -> None:
    service = TransactionService(_blobs(), UTC)
    txn = service.add(_expense("10", reason="Tea", payment_mode="Cash"))

    updated = service.update(txn.id, TransactionUpdate(amount=Decimal("12.5")))
    assert updated.amount == Decimal("12.5")
    assert updated.reason == "Tea"
    assert service.get(txn.id).amount == Decimal("12.5")

    with pytest.raises(ValueError, match="cannot be cleared"):
        service.update(txn.id, TransactionUpdate(amount=None))


def test_switching_to_income_clears_necessity() -> None:
    service = TransactionService(_blobs(), UTC)
    txn = service.add(_expense("10", necessity=Necessity.want))
    updated = service.update(txn.id, TransactionUpdate(type=TransactionType.income))
    assert updated.necessity is None


def test_update_necessity_and_delete() -> None:
    service = TransactionService(_blobs(), UTC)
    txn = service.add(_expense("10"))

    assert service.update_necessity(txn.id, Necessity.need).necessity == Necessity.need
    service.delete(txn.id)
    assert service.list_all() == ()

    with pytest.raises(ValueError, match="not found"):
        service.delete(txn.id)
    with pytest.raises(ValueError, match="not found"):
        service.update_necessity("missing", None)


def test_for_period_filters_by_local_day() -> None:
    service = TransactionService(_blobs(), UTC)
    service.add(_expense("10", day=1))
    service.add(
        TransactionIn(
            date=datetime(2026, 9, 30, 10, 0, tzinfo=timezone.utc),
            type=TransactionType.expense,
            amount=Decimal("5"),
        )
    )
    period = resolve_period("this_month", today=date(2026, 10, 19))
    assert [t.amount for t in service.for_period(period)] == [Decimal("10")]


def test_grouped_by_day_totals_expenses_only() -> None:
    service = TransactionService(_blobs(), UTC)
    service.add(_expense("10", day=1))
    service.add(_expense("5", day=2))
    service.add(
        TransactionIn(
            date=datetime(2026, 10, 2, 9, 0, tzinfo=timezone.utc),
            type=TransactionType.income,
            amount=Decimal("100"),
        )
    )
    groups = service.grouped_by_day()
    assert [g.day for g in groups] == [date(2026, 10, 2), date(2026, 10, 1)]
    assert groups[0].day_total == Decimal("5")
    assert len(groups[0].transactions) == 2


def test_quick_add_suggests_repeated_recent_expenses() -> None:
    service = TransactionService(_blobs(), UTC)
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    for days_ago in (1, 2, 3):
        service.add(
            TransactionIn(
                date=now - timedelta(days=days_ago),
                type=TransactionType.expense,
                amount=Decimal("250"),
                reason="Coffee",
                payment_mode="Card",
            )
        )
    service.add(
        TransactionIn(
            date=now - timedelta(days=1),
            type=TransactionType.expense,
            amount=Decimal("90"),
            reason="Snacks",
        )
    )
    suggestions = service.quick_add_suggestions(now)
    assert [(t.reason, t.amount) for t in suggestions] == [("Coffee", Decimal("250"))]


def test_unreadable_rows_are_skipped_on_load() -> None:
    blobs = _blobs()
    blobs.put(
        TRANSACTIONS_KEY,
        [
            {"id": "ok", "date": "2026-10-01T10:00:00+00:00", "amount": "5", "type": "expense"},
            {"id": "bad", "date": "soon", "amount": "5", "type": "expense"},
            {"id": "neg", "date": "2026-10-01T10:00:00+00:00", "amount": "-1", "type": "expense"},
        ],
    )
    assert [t.id for t in TransactionService(blobs, UTC).list_all()] == ["ok"]


def test_unreadable_rows_survive_unrelated_writes() -> None:
    blobs = _blobs()
    negative = {
        "id": "neg",
        "date": "2026-10-01T10:00:00+00:00",
        "amount": "-1",
        "type": "expense",
    }
    blobs.put(
        TRANSACTIONS_KEY,
        [
            {"id": "ok", "date": "2026-10-01T10:00:00+00:00", "amount": "5", "type": "expense"},
            negative,
        ],
    )
    service = TransactionService(blobs, UTC)
    added = service.add(_expense("7", reason="Tea"))
    service.delete("ok")

    stored = blobs.get(TRANSACTIONS_KEY)
    assert [row["id"] for row in stored] == [added.id, "neg"]
    assert stored[-1] == negative
    assert [t.id for t in service.list_all()] == [added.id]

    TransactionStore(blobs).save([])
    assert blobs.get(TRANSACTIONS_KEY) == [negative]


def test_payment_modes_default_until_saved() -> None:
    blobs = _blobs()
    store = PaymentModeStore(blobs)
    assert [(m.name, m.shorthand) for m in store.load()] == [
        ("Cash", "C"),
        ("Credit Card", "CC"),
        ("Debit", "D"),
    ]

    modes = [PaymentMode(id="9", name="Wallet", shorthand="W")]
    store.save(modes)
    assert store.load() == modes

    with pytest.raises(ValueError, match="Duplicate payment mode id"):
        store.save(modes * 2)
    assert store.load() == modes


def test_invalid_stored_payment_modes_fall_back_to_defaults() -> None:
    blobs = _blobs()
    blobs.put(PAYMENT_MODES_KEY, [{"id": "", "name": "Broken"}])
    assert PaymentModeStore(blobs).load() == list(DEFAULT_PAYMENT_MODES)


def test_ingest_matches_known_reason_case_insensitive() -> None:
    blobs = _blobs()
    TransactionService(blobs, UTC).add(_expense("10", reason="Groceries"))

    txn = IngestService(blobs, UTC).ingest_expense(
        IngestTransactionIn(amount=Decimal("4"), reason="groceries")
    )
    assert txn.reason == "Groceries"
    assert txn.type == TransactionType.expense


def test_ingest_fuzzy_matches_within_one_edit() -> None:
    blobs = _blobs()
    TransactionService(blobs, UTC).add(_expense("10", reason="Groceries"))
    assert IngestService(blobs, UTC).resolve_reason("Grocerie") == "Groceries"
    assert IngestService(blobs, UTC).resolve_reason("Fuel") == "Fuel"
    assert IngestService(blobs, UTC).resolve_reason("  ") == "Other"


def test_ingest_rejects_ambiguous_reason() -> None:
    blobs = _blobs()
    service = TransactionService(blobs, UTC)
    service.add(_expense("10", reason="Cab"))
    service.add(_expense("10", reason="Car"))

    with pytest.raises(IngestReasonAmbiguous, match="Car"):
        IngestService(blobs, UTC).resolve_reason("Caz")


def test_csv_round_trip_through_services() -> None:
    source = _blobs()
    service = TransactionService(source, UTC)
    service.add(_expense("12.50", reason="Books", payment_mode="Card", necessity=Necessity.want))
    exported = CSVService(source, UTC).export(service.list_all())
    assert exported.splitlines()[0] == "Date,Type,Amount,Reason,PaymentMode,Necessity"

    target = _blobs()
    assert CSVService(target, UTC).commit(exported) == 1
    (imported,) = TransactionService(target, UTC).list_all()
    assert imported.amount == Decimal("12.50")
    assert imported.necessity == Necessity.want
    assert imported.payment_mode == "Card"


def test_csv_import_reports_bad_rows() -> None:
    content = (
        "Date,Type,Amount,Reason,PaymentMode,Necessity\n"
        "2026-10-01,expense,10,Tea,Cash,\n"
        "not-a-date,expense,10,Tea,Cash,\n"
        "2026-10-02,expense,-3,Tea,Cash,\n"
    )
    rows, errors = parse_csv(content)
    assert len(rows) == 1
    assert [e.split(":")[0] for e in errors] == ["Row 2", "Row 3"]

    with pytest.raises(ValueError, match="Row 2"):
        CSVService(_blobs(), UTC).commit(content)


def test_csv_value_helpers() -> None:
    assert parse_amount("Rs. 1,250.00") == Decimal("1250.00")
    assert parse_csv("Date,Type,Amount\n01.10.2026,income,5\n")[0][0].date == datetime(
        2026, 10, 1
    )
    assert sanitize_csv_value("=SUM(A1)") == "\t=SUM(A1)"
    assert sanitize_csv_value(" Lunch ") == "Lunch"
