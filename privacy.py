from decimal import Decimal
from typing import Optional, Union

from schemas import PrivacyMode

MASK = "••••"

Number = Union[Decimal, int, float]


def format_number(amount: Number) -> str:
    value = Decimal(str(amount)) if isinstance(amount, float) else Decimal(amount)
    if value == value.to_integral_value():
        return f"{value:,.0f}"
    return f"{value:,.2f}"


def format_amount(
    amount: Number, currency_symbol: str, privacy: Optional[PrivacyMode] = None
) -> str:
    if privacy is not None and privacy.hide_amounts:
        return f"{currency_symbol}{MASK}"
    return f"{currency_symbol}{format_number(amount)}"


def mask_reason(label: str, privacy: Optional[PrivacyMode] = None) -> str:
    if privacy is None or not privacy.hide_reasons or not label:
        return label
    return label[0] + MASK
