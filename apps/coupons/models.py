"""
Coupon models.

PT: Cupons de desconto e o registro imutável de cada uso.
EN: Discount coupons and the immutable record of each redemption.
"""

from __future__ import annotations

import uuid

from django.db import models

from apps.coupons.domain.discount import AppliesTo, CouponTerms, DiscountType, parse_course_ids
from apps.coupons.domain.errors import CouponUsageImmutableError


class Coupon(models.Model):
    DISCOUNT_TYPE_CHOICES = [
        (DiscountType.PERCENTAGE.value, "Percentage"),
        (DiscountType.FIXED.value, "Fixed"),
    ]
    APPLIES_TO_CHOICES = [
        (AppliesTo.ALL_COURSES.value, "All courses"),
        (AppliesTo.SPECIFIC_COURSES.value, "Specific courses"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=50, unique=True)
    description = models.CharField(max_length=255, blank=True, default="")
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPE_CHOICES)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2)
    max_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    minimum_order_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    max_uses = models.PositiveIntegerField(null=True, blank=True)
    max_uses_per_user = models.PositiveIntegerField(null=True, blank=True)
    current_uses = models.PositiveIntegerField(default=0)
    applies_to = models.CharField(max_length=20, choices=APPLIES_TO_CHOICES, default=AppliesTo.ALL_COURSES.value)
    # JSON array string; null means every course.
    course_ids = models.TextField(null=True, blank=True)
    starts_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_by = models.CharField(max_length=64, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(max_uses__isnull=True) | models.Q(current_uses__lte=models.F("max_uses")),
                name="coupon_uses_within_limit",
            ),
        ]

    def __str__(self) -> str:
        return self.code

    def to_terms(self) -> CouponTerms:
        return CouponTerms(
            code=self.code,
            discount_type=self.discount_type,
            discount_value=self.discount_value,
            is_active=self.is_active,
            max_discount_amount=self.max_discount_amount,
            minimum_order_amount=self.minimum_order_amount,
            max_uses=self.max_uses,
            max_uses_per_user=self.max_uses_per_user,
            current_uses=self.current_uses,
            applies_to=self.applies_to,
            course_ids=parse_course_ids(self.course_ids),
            starts_at=self.starts_at,
            expires_at=self.expires_at,
        )


class CouponUsageQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise CouponUsageImmutableError("Coupon usages are immutable.")

    def delete(self):
        raise CouponUsageImmutableError("Coupon usages are immutable.")


class CouponUsage(models.Model):
    """One successful redemption; written once, never edited."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    coupon = models.ForeignKey(Coupon, on_delete=models.PROTECT, related_name="usages")
    payment = models.OneToOneField(
        "payments.Payment", on_delete=models.PROTECT, related_name="coupon_usage"
    )
    user_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    enrollment_id = models.CharField(max_length=64, blank=True, default="")
    course_id = models.CharField(max_length=64, blank=True, default="")
    discount_type = models.CharField(max_length=20)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2)
    discount_applied = models.DecimalField(max_digits=12, decimal_places=2)
    original_amount = models.DecimalField(max_digits=12, decimal_places=2)
    final_amount = models.DecimalField(max_digits=12, decimal_places=2)
    used_at = models.DateTimeField(auto_now_add=True)

    objects = CouponUsageQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["coupon", "user_id"], name="coupon_usage_user_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.coupon_id} - {self.payment_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise CouponUsageImmutableError("Coupon usages are immutable.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise CouponUsageImmutableError("Coupon usages are immutable.")
