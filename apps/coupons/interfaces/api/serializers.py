from __future__ import annotations

from rest_framework import serializers

DECIMAL = {"max_digits": 12, "decimal_places": 2}


class CouponCreateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    discount_type = serializers.CharField(max_length=20)
    discount_value = serializers.DecimalField(**DECIMAL)
    max_discount_amount = serializers.DecimalField(**DECIMAL, required=False, allow_null=True, default=None)
    minimum_order_amount = serializers.DecimalField(**DECIMAL, required=False, allow_null=True, default=None)
    max_uses = serializers.IntegerField(required=False, allow_null=True, default=None)
    max_uses_per_user = serializers.IntegerField(required=False, allow_null=True, default=None)
    applies_to = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")
    course_ids = serializers.ListField(child=serializers.CharField(max_length=64), required=False, default=list)
    starts_at = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)
    expires_at = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)
    is_active = serializers.BooleanField(required=False, default=True)


class CouponUpdateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50, required=False)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    discount_type = serializers.CharField(max_length=20, required=False)
    discount_value = serializers.DecimalField(**DECIMAL, required=False)
    max_discount_amount = serializers.DecimalField(**DECIMAL, required=False, allow_null=True)
    minimum_order_amount = serializers.DecimalField(**DECIMAL, required=False, allow_null=True)
    max_uses = serializers.IntegerField(required=False, allow_null=True)
    max_uses_per_user = serializers.IntegerField(required=False, allow_null=True)
    applies_to = serializers.CharField(max_length=20, required=False)
    course_ids = serializers.ListField(child=serializers.CharField(max_length=64), required=False)
    starts_at = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    expires_at = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    is_active = serializers.BooleanField(required=False)


class CouponValidateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    amount = serializers.DecimalField(**DECIMAL)
    course_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    user_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")


def _money(value) -> str | None:
    return f"{value:.2f}" if value is not None else None


def coupon_to_dict(coupon) -> dict:
    return {
        "id": str(coupon.id),
        "code": coupon.code,
        "description": coupon.description,
        "discount_type": coupon.discount_type,
        "discount_value": _money(coupon.discount_value),
        "max_discount_amount": _money(coupon.max_discount_amount),
        "minimum_order_amount": _money(coupon.minimum_order_amount),
        "max_uses": coupon.max_uses,
        "max_uses_per_user": coupon.max_uses_per_user,
        "current_uses": coupon.current_uses,
        "applies_to": coupon.applies_to,
        "course_ids": list(coupon.to_terms().course_ids),
        "starts_at": coupon.starts_at.isoformat() if coupon.starts_at else None,
        "expires_at": coupon.expires_at.isoformat() if coupon.expires_at else None,
        "is_active": coupon.is_active,
        "created_at": coupon.created_at.isoformat() if coupon.created_at else None,
    }


def quote_to_dict(quote) -> dict:
    data = {
        "valid": quote.valid,
        "code": quote.code,
        "discount_amount": _money(quote.discount_amount),
        "final_amount": _money(quote.final_amount),
        "message": quote.message,
    }
    if quote.valid and quote.coupon is not None:
        data.update(
            {
                "coupon_id": str(quote.coupon.id),
                "discount_type": quote.coupon.discount_type,
                "discount_value": _money(quote.coupon.discount_value),
            }
        )
    return data
