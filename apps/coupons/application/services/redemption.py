from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from django.db.models import F, Q
from django.utils import timezone

from apps.coupons.domain.discount import applies_to_course, calculate_discount
from apps.coupons.domain.errors import CouponNotApplicableError
from apps.coupons.domain.policies import normalize_code
from apps.coupons.models import Coupon, CouponUsage

logger = logging.getLogger("condotrack.coupons")

MESSAGE_NOT_FOUND = "Cupom não encontrado"
MESSAGE_USER_LIMIT = "Limite de uso deste cupom excedido"
MESSAGE_NOT_APPLICABLE = "Cupom não aplicável a este pedido"
MESSAGE_VALID = "Cupom válido"


@dataclass(frozen=True)
class CouponQuote:
    valid: bool
    code: str
    message: str
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    coupon: Coupon | None = None


class CouponQuoteService:
    """Evaluates a code against an order without side effects."""

    @staticmethod
    def usage_count(coupon: Coupon, user_id: str) -> int:
        return CouponUsage.objects.filter(coupon=coupon, user_id=user_id).count()

    @staticmethod
    def quote(
        *,
        code: str,
        amount: Decimal,
        course_id: str = "",
        user_id: str = "",
        now: datetime | None = None,
    ) -> CouponQuote:
        now = now or timezone.now()
        normalized = normalize_code(code)

        def _rejected(message: str, coupon: Coupon | None = None) -> CouponQuote:
            return CouponQuote(
                valid=False,
                code=normalized,
                message=message,
                original_amount=amount,
                discount_amount=Decimal("0"),
                final_amount=amount,
                coupon=coupon,
            )

        coupon = Coupon.objects.filter(code=normalized).first() if normalized else None
        if coupon is None:
            return _rejected(MESSAGE_NOT_FOUND)

        terms = coupon.to_terms()
        if terms.max_uses_per_user is not None and user_id:
            if CouponQuoteService.usage_count(coupon, user_id) >= terms.max_uses_per_user:
                return _rejected(MESSAGE_USER_LIMIT, coupon)

        if not applies_to_course(terms, course_id):
            return _rejected(MESSAGE_NOT_APPLICABLE, coupon)

        discount = calculate_discount(terms, amount, now=now)
        if discount <= 0:
            return _rejected(MESSAGE_NOT_APPLICABLE, coupon)

        return CouponQuote(
            valid=True,
            code=coupon.code,
            message=MESSAGE_VALID,
            original_amount=amount,
            discount_amount=discount,
            final_amount=amount - discount,
            coupon=coupon,
        )

    @staticmethod
    def require(**kwargs) -> CouponQuote:
        quote = CouponQuoteService.quote(**kwargs)
        if not quote.valid:
            raise CouponNotApplicableError(quote.message)
        return quote


class CouponRedemptionService:
    """Records a redemption; callers must hold an open transaction."""

    @staticmethod
    def redeem(*, payment) -> CouponUsage | None:
        if payment.coupon_id is None:
            return None
        existing = CouponUsage.objects.filter(payment=payment).first()
        if existing is not None:
            return existing

        coupon = payment.coupon
        claimed = Coupon.objects.filter(pk=coupon.pk).filter(
            Q(max_uses__isnull=True) | Q(current_uses__lt=F("max_uses"))
        ).update(current_uses=F("current_uses") + 1)
        if not claimed:
            # The charge already happened; keep the usage record but flag the overrun.
            logger.warning(
                "coupon_max_uses_reached",
                extra={"coupon_code": coupon.code, "payment_id": str(payment.pk)},
            )

        usage = CouponUsage.objects.create(
            coupon=coupon,
            payment=payment,
            user_id=payment.payer_user_id,
            enrollment_id=payment.enrollment_id,
            course_id=payment.course_id,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            discount_applied=payment.discount_amount,
            original_amount=payment.gross_amount,
            final_amount=payment.gross_amount - payment.discount_amount,
        )
        logger.info(
            "coupon_redeemed",
            extra={"coupon_code": coupon.code, "payment_id": str(payment.pk), "incremented": bool(claimed)},
        )
        return usage
