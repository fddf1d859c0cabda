"""
Coupon discount computation.

PT: Cálculo do desconto de um cupom para um pedido.
EN: Pure discount computation for a coupon against an order amount.

``calculate_discount`` never returns a negative value nor more than the order
amount; any failed precondition (inactive, under minimum, exhausted, outside
the validity window) yields zero.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class DiscountType(StrEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class AppliesTo(StrEnum):
    ALL_COURSES = "all_courses"
    SPECIFIC_COURSES = "specific_courses"


@dataclass(frozen=True)
class CouponTerms:
    code: str
    discount_type: str
    discount_value: Decimal
    is_active: bool = True
    max_discount_amount: Decimal | None = None
    minimum_order_amount: Decimal | None = None
    max_uses: int | None = None
    max_uses_per_user: int | None = None
    current_uses: int = 0
    applies_to: str = AppliesTo.ALL_COURSES
    course_ids: tuple[str, ...] = field(default_factory=tuple)
    starts_at: datetime | None = None
    expires_at: datetime | None = None


def parse_course_ids(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    try:
        values = json.loads(raw)
    except (TypeError, ValueError):
        return ()
    if not isinstance(values, list):
        return ()
    return tuple(str(v) for v in values)


def is_within_validity(terms: CouponTerms, now: datetime) -> bool:
    if terms.starts_at is not None and now < terms.starts_at:
        return False
    if terms.expires_at is not None and now > terms.expires_at:
        return False
    return True


def is_exhausted(terms: CouponTerms) -> bool:
    return terms.max_uses is not None and terms.current_uses >= terms.max_uses


def applies_to_course(terms: CouponTerms, course_id: str | None) -> bool:
    if terms.applies_to != AppliesTo.SPECIFIC_COURSES:
        return True
    # A scoped coupon checked without a course is judged by amount alone.
    if not course_id:
        return True
    return course_id in terms.course_ids


def calculate_discount(terms: CouponTerms, order_amount: Decimal, *, now: datetime) -> Decimal:
    if order_amount <= 0 or not terms.is_active:
        return ZERO
    if terms.minimum_order_amount is not None and order_amount < terms.minimum_order_amount:
        return ZERO
    if is_exhausted(terms) or not is_within_validity(terms, now):
        return ZERO

    if terms.discount_type == DiscountType.PERCENTAGE:
        discount = order_amount * terms.discount_value / HUNDRED
        if terms.max_discount_amount is not None and discount > terms.max_discount_amount:
            discount = terms.max_discount_amount
    elif terms.discount_type == DiscountType.FIXED:
        discount = terms.discount_value
    else:
        discount = ZERO

    return min(max(discount, ZERO), order_amount)
