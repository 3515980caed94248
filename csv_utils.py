import csv
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Optional, Sequence

from models import Necessity, Transaction, TransactionType
from schemas import CSVRow

HEADER = ["Date", "Type", "Amount", "Reason", "PaymentMode", "Necessity"]


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_date(value: str) -> datetime:
    value = value.strip()
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return datetime.strptime(value, "%d.%m.%Y")


def parse_amount(value: str) -> Decimal:
    clean = value.strip().replace("Rs.", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", "")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    if amount < 0:
        raise ValueError("Amount must be positive")
    return amount


def parse_necessity(value: str) -> Optional[Necessity]:
    value = value.strip().lower()
    if not value:
        return None
    return Necessity(value)


def parse_csv(content: str) -> tuple[list[CSVRow], list[str]]:
    reader = csv.DictReader(StringIO(content))
    rows: list[CSVRow] = []
    errors: list[str] = []
    for idx, raw in enumerate(reader, start=1):
        try:
            rows.append(
                CSVRow(
                    date=parse_date(raw.get("Date") or ""),
                    type=TransactionType((raw.get("Type") or "").strip().lower()),
                    amount=parse_amount(raw.get("Amount") or "0"),
                    reason=(raw.get("Reason") or "").strip(),
                    payment_mode=(raw.get("PaymentMode") or "").strip(),
                    necessity=parse_necessity(raw.get("Necessity") or ""),
                )
            )
        except Exception as exc:
            errors.append(f"Row {idx}: {exc}")
    return rows, errors


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(HEADER)
    for txn in transactions:
        writer.writerow(
            [
                txn.date.isoformat(),
                txn.type.value,
                f"{txn.amount:.2f}",
                sanitize_csv_value(txn.reason),
                sanitize_csv_value(txn.payment_mode),
                txn.necessity.value if txn.necessity else "",
            ]
        )
    return output.getvalue()
