from __future__ import annotations

from dataclasses import dataclass

from django.db import transaction

from apps.coupons.domain.errors import CouponInUseError, CouponNotFoundError
from apps.coupons.models import Coupon, CouponUsage


@dataclass(frozen=True)
class DeleteCouponCommand:
    coupon_id: str


class DeleteCouponUseCase:
    """Deletes an unused coupon. Redeemed coupons can only be deactivated."""

    @staticmethod
    @transaction.atomic
    def execute(cmd: DeleteCouponCommand) -> None:
        coupon = Coupon.objects.select_for_update().filter(pk=cmd.coupon_id).first()
        if coupon is None:
            raise CouponNotFoundError("coupon not found")
        if coupon.payments.exists() or CouponUsage.objects.filter(coupon=coupon).exists():
            raise CouponInUseError("coupon has been used; deactivate it instead")
        coupon.delete()
