from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from .errors import PaymentValidationError

DUE_DATE_FORMAT = "%Y-%m-%d"
AMOUNT_TOLERANCE = Decimal("0.01")
MAX_INSTALLMENTS = 12


def require_text(raw: str | None, *, field: str, message: str) -> str:
    value = (raw or "").strip()
    if not value:
        raise PaymentValidationError(message, field=field)
    return value


def validate_amount(raw, *, field: str = "amount") -> Decimal:
    try:
        amount = raw if isinstance(raw, Decimal) else Decimal(str(raw))
    except (InvalidOperation, TypeError, ValueError):
        raise PaymentValidationError("Amount must be a number.", field=field) from None
    if not amount.is_finite() or amount <= 0:
        raise PaymentValidationError("Payment value must be greater than 0.", field=field)
    return amount


def parse_due_date(raw: str | None) -> date | None:
    value = (raw or "").strip()
    if not value:
        return None
    try:
        return datetime.strptime(value, DUE_DATE_FORMAT).date()
    except ValueError:
        raise PaymentValidationError("Invalid due_date format (use YYYY-MM-DD).", field="due_date") from None


def validate_installments(raw: int | None) -> int:
    installments = raw or 1
    if not 1 <= installments <= MAX_INSTALLMENTS:
        raise PaymentValidationError(
            f"Installments must be between 1 and {MAX_INSTALLMENTS}.", field="installments"
        )
    return installments


def ensure_amounts_consistent(
    *,
    gross_amount: Decimal,
    discount_amount: Decimal,
    gateway_fee: Decimal,
    net_amount: Decimal,
    refunded_amount: Decimal,
) -> None:
    expected = gross_amount - discount_amount - gateway_fee
    if abs(net_amount - expected) > AMOUNT_TOLERANCE:
        raise PaymentValidationError(
            f"Net amount {net_amount} does not match gross - discount - fee ({expected}).",
            field="net_amount",
        )
    if refunded_amount > gross_amount:
        raise PaymentValidationError("Refunded amount cannot exceed the gross amount.", field="refunded_amount")
