from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from apps.coupons.application.services.redemption import CouponQuote, CouponQuoteService
from apps.coupons.domain.errors import CouponValidationError


@dataclass(frozen=True)
class ValidateCouponCommand:
    code: str
    amount: Decimal
    course_id: str = ""
    user_id: str = ""


class ValidateCouponUseCase:
    @staticmethod
    def execute(cmd: ValidateCouponCommand) -> CouponQuote:
        if not (cmd.code or "").strip():
            raise CouponValidationError("code is required", field="code")
        if cmd.amount is None or cmd.amount <= 0:
            raise CouponValidationError("amount must be greater than 0", field="amount")
        return CouponQuoteService.quote(
            code=cmd.code,
            amount=cmd.amount,
            course_id=(cmd.course_id or "").strip(),
            user_id=(cmd.user_id or "").strip(),
        )
