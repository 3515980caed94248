from datetime import datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from analytics import compute_analytics
from cards import (
    CARD_IDS,
    CardContext,
    CardId,
    CardType,
    ChartContent,
    InsightContent,
    StatContent,
    build_cards,
    ratio_text,
)
from models import Necessity, Transaction, TransactionType
from privacy import MASK, format_amount, mask_reason
from schemas import AppSettings, PrivacyMode
from streaks import StreakData, calculate_streaks

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
UTC = ZoneInfo("UTC")


def _txn(txn_id, amount, day, txn_type=TransactionType.expense, **kwargs) -> Transaction:
    return Transaction(
        id=txn_id,
        date=datetime(2026, 10, day, 10, 0, tzinfo=timezone.utc),
        amount=Decimal(amount),
        type=txn_type,
        **kwargs,
    )


SAMPLE = (
    _txn("coffee", "100", 1, reason="Coffee", payment_mode="Cash", necessity=Necessity.want),
    _txn("rent", "500", 2, reason="Rent", payment_mode="Bank", necessity=Necessity.need),
    _txn("salary", "2000", 1, TransactionType.income),
)


def _context(transactions=SAMPLE, settings=None, streaks=None) -> CardContext:
    snapshot = compute_analytics(transactions, transactions, now=NOW, tz=UTC)
    if streaks is None:
        streaks = calculate_streaks(transactions, now=NOW, tz=UTC)
    return CardContext.create(snapshot, streaks, settings or AppSettings(), "this month")


def test_registry_covers_every_card_id_in_order() -> None:
    cards = build_cards(_context())
    assert tuple(cards) == CARD_IDS
    assert set(CARD_IDS) == {card_id.value for card_id in CardId}
    assert CARD_IDS[0] == "spent" and CARD_IDS[-1] == "last-month"


def test_rendered_variant_matches_card_type() -> None:
    for spec in build_cards(_context()).values():
        content = spec.render()
        assert content is not None, spec.id
        expected = {
            CardType.stat: StatContent,
            CardType.insight: InsightContent,
            CardType.chart: ChartContent,
        }[spec.type]
        assert isinstance(content, expected), spec.id


def test_headline_cards_format_amounts() -> None:
    cards = build_cards(_context())
    spent = cards["spent"].render()
    assert spent.value == "Rs.600"
    assert spent.tone == "expense"

    savings = cards["savings"].render()
    assert savings.value == "+Rs.1,400"
    assert savings.subtitle == "70% savings rate"

    biggest = cards["biggest-expense"].render()
    assert biggest.value == "Rs.500"
    assert biggest.detail == "Rent"
    assert biggest.subtitle == "Oct 2 via Bank"

    needs_wants = cards["needs-wants"].render()
    assert needs_wants.subtitle == "5.0x needs to wants"
    assert [p.label for p in needs_wants.points] == ["Needs", "Wants"]


def test_negative_savings_show_a_minus_sign_and_zero_rate() -> None:
    transactions = (
        _txn("rent", "500", 2),
        _txn("pay", "100", 1, TransactionType.income),
    )
    savings = build_cards(_context(transactions))["savings"].render()
    assert savings.value == "-Rs.400"
    assert savings.tone == "expense"
    assert savings.subtitle == "0% savings rate"


def test_cards_without_data_render_absent() -> None:
    cards = build_cards(_context(()))
    for card_id in (
        "most-frequent",
        "biggest-expense",
        "best-day",
        "worst-day",
        "top-categories",
        "needs-wants",
        "payment-mode",
    ):
        assert cards[card_id].render() is None, card_id
    assert cards["spent"].render().value == "Rs.0"
    assert len(cards["daily-chart"].render().points) == 7


def test_worst_day_is_absent_when_only_one_day_has_spending() -> None:
    transactions = (_txn("a", "10", 5), _txn("b", "20", 5))
    cards = build_cards(_context(transactions))
    assert cards["best-day"].render().value == "Rs.30"
    assert cards["worst-day"].render() is None


def test_privacy_masks_amounts_and_reasons() -> None:
    settings = AppSettings(privacy=PrivacyMode(hide_amounts=True, hide_reasons=True))
    cards = build_cards(_context(settings=settings))

    assert cards["spent"].render().value == f"Rs.{MASK}"
    assert cards["biggest-expense"].render().detail == f"R{MASK}"
    assert cards["most-frequent"].render().value == f"C{MASK}"
    top = cards["top-categories"].render()
    assert [p.label for p in top.points] == [f"R{MASK}", f"C{MASK}"]
    assert top.points[0].formatted["value"] == f"Rs.{MASK}"


def test_streak_cards_read_streak_state() -> None:
    streaks = StreakData(no_expense_streak=1)
    cards = build_cards(_context(streaks=streaks))
    assert cards["no-expense-streak"].render().value == "1 day"
    assert cards["spending-streak"].render().value == "0 days"


def test_ratio_text() -> None:
    assert ratio_text(float("inf")) == "Needs only, no wants"
    assert ratio_text(0.5) == "0.5x needs to wants"


def test_needs_only_period_reports_unbounded_ratio() -> None:
    transactions = (_txn("rent", "500", 2, necessity=Necessity.need),)
    card = build_cards(_context(transactions))["needs-wants"].render()
    assert card.subtitle == "Needs only, no wants"


def test_build_cards_is_pure() -> None:
    ctx = _context()
    first = {k: spec.render() for k, spec in build_cards(ctx).items()}
    second = {k: spec.render() for k, spec in build_cards(ctx).items()}
    assert first == second


def test_chart_cards_are_full_width() -> None:
    cards = build_cards(_context())
    assert cards["daily-chart"].is_full_width
    assert cards["biggest-expense"].is_full_width
    assert not cards["spent"].is_full_width


def test_formatting_helpers() -> None:
    assert format_amount(Decimal("1234.5"), "$") == "$1,234.50"
    assert format_amount(Decimal("1234"), "$") == "$1,234"
    assert mask_reason("Food") == "Food"
    assert mask_reason("", PrivacyMode(hide_reasons=True)) == ""


def test_biggest_expense_subtitle_uses_local_day() -> None:
    late = Transaction(
        id="late",
        date=datetime(2026, 10, 18, 22, 30, tzinfo=timezone.utc),
        amount=Decimal("75"),
        type=TransactionType.expense,
        payment_mode="Cash",
    )
    snapshot = compute_analytics(
        [late], [late], now=NOW, tz=ZoneInfo("Asia/Karachi")
    )
    ctx = CardContext.create(snapshot, StreakData(), AppSettings(), "this month")
    assert build_cards(ctx)["biggest-expense"].render().subtitle == "Oct 19 via Cash"
