from __future__ import annotations


class CouponDomainError(ValueError):
    pass


class CouponValidationError(CouponDomainError):
    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class CouponAlreadyExistsError(CouponDomainError):
    def __init__(self, message: str = "coupon code already exists", *, field: str | None = "code"):
        super().__init__(message)
        self.field = field


class CouponNotFoundError(CouponDomainError):
    pass


class CouponNotApplicableError(CouponDomainError):
    def __init__(self, message: str, *, field: str | None = "discount_code"):
        super().__init__(message)
        self.field = field


class CouponInUseError(CouponDomainError):
    pass


class CouponUsageImmutableError(CouponDomainError):
    pass
