"""
Gateway fee and instructor/platform revenue split computation.

The functions here are pure and return unrounded Decimals; rounding to cents
happens once, when an amount is persisted (see ``round_money`` and
``allocate_net_amount``).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .types import DEFAULT_FEES, FeeSchedule

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

_PIX_METHODS = frozenset({"pix"})
_BOLETO_METHODS = frozenset({"boleto"})
_CARD_METHODS = frozenset({"card", "credit_card", "debit_card"})


@dataclass(frozen=True)
class RevenueSplitResult:
    gross_amount: Decimal
    payment_fee: Decimal
    payment_fee_description: str
    net_amount: Decimal
    instructor_amount: Decimal
    platform_amount: Decimal
    instructor_percent: Decimal
    platform_percent: Decimal


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _method_key(method: str | None) -> str:
    return (method or "").strip().lower()


def calculate_payment_fee(amount, method: str | None, fees: FeeSchedule = DEFAULT_FEES) -> Decimal:
    amount = to_decimal(amount)
    key = _method_key(method)
    if key in _PIX_METHODS:
        return amount * fees.pix_percent
    if key in _BOLETO_METHODS:
        return fees.boleto_fixed
    if key in _CARD_METHODS:
        return amount * fees.card_percent + fees.card_fixed
    return Decimal("0")


def _percent_label(fraction: Decimal) -> str:
    return f"{fraction * HUNDRED:.2f}"


def describe_payment_fee(method: str | None, fees: FeeSchedule = DEFAULT_FEES) -> str:
    key = _method_key(method)
    if key in _PIX_METHODS:
        return f"PIX: {_percent_label(fees.pix_percent)}%"
    if key in _BOLETO_METHODS:
        return f"Boleto: R$ {fees.boleto_fixed:.2f} fixo"
    if key in _CARD_METHODS:
        return f"Cartão: {_percent_label(fees.card_percent)}% + R$ {fees.card_fixed:.2f}"
    return "Método desconhecido"


def calculate_revenue_split(
    gross_amount,
    method: str | None,
    instructor_percent,
    platform_percent,
    fees: FeeSchedule = DEFAULT_FEES,
) -> RevenueSplitResult:
    # Percentages are applied independently; they are not required to sum to 100.
    gross = to_decimal(gross_amount)
    instructor_pct = to_decimal(instructor_percent)
    platform_pct = to_decimal(platform_percent)

    fee = calculate_payment_fee(gross, method, fees)
    net = gross - fee
    return RevenueSplitResult(
        gross_amount=gross,
        payment_fee=fee,
        payment_fee_description=describe_payment_fee(method, fees),
        net_amount=net,
        instructor_amount=net * instructor_pct / HUNDRED,
        platform_amount=net * platform_pct / HUNDRED,
        instructor_percent=instructor_pct,
        platform_percent=platform_pct,
    )


def allocate_net_amount(net_amount, instructor_percent, platform_percent) -> tuple[Decimal, Decimal]:
    """Round both shares half-up to cents, never handing out more than ``net_amount``.

    When both shares round up past the net amount, the excess cent comes out
    of the platform share.
    """
    net = round_money(net_amount)
    instructor = round_money(net * to_decimal(instructor_percent) / HUNDRED)
    platform = round_money(net * to_decimal(platform_percent) / HUNDRED)
    excess = instructor + platform - net
    if excess > 0:
        platform = max(platform - excess, Decimal("0.00"))
    return instructor, platform
