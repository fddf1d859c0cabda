from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import IntegrityError, transaction

from apps.coupons.domain.errors import CouponAlreadyExistsError
from apps.coupons.domain.policies import (
    parse_timestamp,
    validate_code,
    validate_discount,
    validate_optional_amount,
    validate_optional_limit,
    validate_scope,
    validate_window,
)
from apps.coupons.models import Coupon

logger = logging.getLogger("condotrack.coupons")


@dataclass(frozen=True)
class CreateCouponCommand:
    code: str
    discount_type: str
    discount_value: Decimal
    description: str = ""
    max_discount_amount: Decimal | None = None
    minimum_order_amount: Decimal | None = None
    max_uses: int | None = None
    max_uses_per_user: int | None = None
    applies_to: str = ""
    course_ids: tuple[str, ...] = ()
    starts_at: str | None = None
    expires_at: str | None = None
    is_active: bool = True
    created_by: str = ""


class CreateCouponUseCase:
    @staticmethod
    def execute(cmd: CreateCouponCommand) -> Coupon:
        code = validate_code(cmd.code)
        discount_type, discount_value = validate_discount(cmd.discount_type, cmd.discount_value)
        applies_to, course_ids = validate_scope(cmd.applies_to, list(cmd.course_ids))
        starts_at = parse_timestamp(cmd.starts_at, field="starts_at")
        expires_at = parse_timestamp(cmd.expires_at, field="expires_at")
        validate_window(starts_at, expires_at)
        max_discount_amount = validate_optional_amount(cmd.max_discount_amount, field="max_discount_amount")
        minimum_order_amount = validate_optional_amount(
            cmd.minimum_order_amount, field="minimum_order_amount", allow_zero=True
        )

        if Coupon.objects.filter(code=code).exists():
            raise CouponAlreadyExistsError()

        try:
            with transaction.atomic():
                coupon = Coupon.objects.create(
                    code=code,
                    description=(cmd.description or "").strip(),
                    discount_type=discount_type,
                    discount_value=discount_value,
                    max_discount_amount=max_discount_amount,
                    minimum_order_amount=minimum_order_amount,
                    max_uses=validate_optional_limit(cmd.max_uses, field="max_uses"),
                    max_uses_per_user=validate_optional_limit(cmd.max_uses_per_user, field="max_uses_per_user"),
                    applies_to=applies_to,
                    course_ids=course_ids,
                    starts_at=starts_at,
                    expires_at=expires_at,
                    is_active=cmd.is_active,
                    created_by=cmd.created_by,
                )
        except IntegrityError:
            raise CouponAlreadyExistsError() from None

        logger.info("coupon_created", extra={"coupon_code": coupon.code, "discount_type": discount_type})
        return coupon
