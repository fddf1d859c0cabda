from __future__ import annotations

from dataclasses import dataclass

from apps.coupons.domain.errors import CouponNotFoundError
from apps.coupons.models import Coupon

MAX_PER_PAGE = 100


@dataclass(frozen=True)
class ListCouponsCommand:
    active_only: bool = False
    page: int = 1
    per_page: int = 20


@dataclass(frozen=True)
class ListCouponsResult:
    coupons: list[Coupon]
    total: int
    page: int
    per_page: int


class ListCouponsUseCase:
    @staticmethod
    def execute(cmd: ListCouponsCommand) -> ListCouponsResult:
        page = max(cmd.page, 1)
        per_page = min(max(cmd.per_page, 1), MAX_PER_PAGE)
        qs = Coupon.objects.all()
        if cmd.active_only:
            qs = qs.filter(is_active=True)
        total = qs.count()
        offset = (page - 1) * per_page
        return ListCouponsResult(coupons=list(qs[offset : offset + per_page]), total=total, page=page, per_page=per_page)


class GetCouponUseCase:
    @staticmethod
    def execute(coupon_id: str) -> Coupon:
        coupon = Coupon.objects.filter(pk=coupon_id).first()
        if coupon is None:
            raise CouponNotFoundError("coupon not found")
        return coupon
