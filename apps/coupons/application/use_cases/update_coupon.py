from __future__ import annotations

from dataclasses import dataclass, field

from django.db import transaction

from apps.coupons.domain.errors import CouponAlreadyExistsError, CouponNotFoundError
from apps.coupons.domain.policies import (
    ensure_usage_within_limit,
    parse_timestamp,
    validate_code,
    validate_discount,
    validate_optional_amount,
    validate_optional_limit,
    validate_scope,
    validate_window,
)
from apps.coupons.models import Coupon


@dataclass(frozen=True)
class UpdateCouponCommand:
    coupon_id: str
    changes: dict = field(default_factory=dict)


class UpdateCouponUseCase:
    """Partial update; only keys present in ``changes`` are touched."""

    @staticmethod
    @transaction.atomic
    def execute(cmd: UpdateCouponCommand) -> Coupon:
        coupon = Coupon.objects.select_for_update().filter(pk=cmd.coupon_id).first()
        if coupon is None:
            raise CouponNotFoundError("coupon not found")
        changes = cmd.changes

        if "code" in changes:
            code = validate_code(changes["code"])
            if code != coupon.code and Coupon.objects.filter(code=code).exists():
                raise CouponAlreadyExistsError()
            coupon.code = code
        if "description" in changes:
            coupon.description = (changes["description"] or "").strip()
        if "discount_type" in changes or "discount_value" in changes:
            coupon.discount_type, coupon.discount_value = validate_discount(
                changes.get("discount_type", coupon.discount_type),
                changes.get("discount_value", coupon.discount_value),
            )
        if "applies_to" in changes or "course_ids" in changes:
            current_ids = list(coupon.to_terms().course_ids)
            coupon.applies_to, coupon.course_ids = validate_scope(
                changes.get("applies_to", coupon.applies_to),
                changes.get("course_ids", current_ids),
            )
        if "max_discount_amount" in changes:
            coupon.max_discount_amount = validate_optional_amount(
                changes["max_discount_amount"], field="max_discount_amount"
            )
        if "minimum_order_amount" in changes:
            coupon.minimum_order_amount = validate_optional_amount(
                changes["minimum_order_amount"], field="minimum_order_amount", allow_zero=True
            )
        for key in ("max_uses", "max_uses_per_user"):
            if key in changes:
                setattr(coupon, key, validate_optional_limit(changes[key], field=key))
        for key in ("starts_at", "expires_at"):
            if key in changes:
                setattr(coupon, key, parse_timestamp(changes[key], field=key))
        if "is_active" in changes:
            coupon.is_active = bool(changes["is_active"])

        validate_window(coupon.starts_at, coupon.expires_at)
        ensure_usage_within_limit(coupon.current_uses, coupon.max_uses)
        coupon.save()
        return coupon
