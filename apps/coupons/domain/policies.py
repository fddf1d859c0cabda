from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal, InvalidOperation

from .discount import AppliesTo, DiscountType
from .errors import CouponValidationError

MAX_CODE_LENGTH = 50


def normalize_code(raw: str | None) -> str:
    return (raw or "").strip().upper()


def validate_code(raw: str | None) -> str:
    code = normalize_code(raw)
    if not code:
        raise CouponValidationError("code is required", field="code")
    if len(code) > MAX_CODE_LENGTH:
        raise CouponValidationError(f"code must have at most {MAX_CODE_LENGTH} characters", field="code")
    return code


def validate_discount(discount_type: str | None, discount_value) -> tuple[str, Decimal]:
    kind = (discount_type or "").strip().lower()
    if kind not in (DiscountType.PERCENTAGE, DiscountType.FIXED):
        raise CouponValidationError("discount_type must be 'percentage' or 'fixed'", field="discount_type")
    try:
        value = discount_value if isinstance(discount_value, Decimal) else Decimal(str(discount_value))
    except (InvalidOperation, TypeError, ValueError):
        raise CouponValidationError("discount_value must be a number", field="discount_value") from None
    if not value.is_finite() or value <= 0:
        raise CouponValidationError("discount_value must be greater than 0", field="discount_value")
    if kind == DiscountType.PERCENTAGE and value > 100:
        raise CouponValidationError("percentage discount cannot exceed 100", field="discount_value")
    return kind, value


def validate_scope(applies_to: str | None, course_ids: list[str] | None) -> tuple[str, str | None]:
    scope = (applies_to or "").strip().lower() or AppliesTo.ALL_COURSES
    if scope not in (AppliesTo.ALL_COURSES, AppliesTo.SPECIFIC_COURSES):
        raise CouponValidationError(
            "applies_to must be 'all_courses' or 'specific_courses'", field="applies_to"
        )
    ids = [str(c).strip() for c in (course_ids or []) if str(c).strip()]
    if scope == AppliesTo.SPECIFIC_COURSES and not ids:
        raise CouponValidationError("course_ids is required for specific_courses", field="course_ids")
    return scope, (json.dumps(ids) if ids else None)


def parse_timestamp(raw: str | None, *, field: str) -> datetime | None:
    """Parse an RFC 3339 timestamp; offsets are required."""
    value = (raw or "").strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise CouponValidationError(f"{field} must be an RFC 3339 timestamp", field=field) from None
    if parsed.tzinfo is None:
        raise CouponValidationError(f"{field} must include a timezone offset", field=field)
    return parsed


def validate_window(starts_at: datetime | None, expires_at: datetime | None) -> None:
    if starts_at and expires_at and expires_at <= starts_at:
        raise CouponValidationError("expires_at must be after starts_at", field="expires_at")


def validate_optional_limit(raw: int | None, *, field: str) -> int | None:
    if raw is None:
        return None
    if raw < 1:
        raise CouponValidationError(f"{field} must be at least 1", field=field)
    return raw


def validate_optional_amount(raw, *, field: str, allow_zero: bool = False) -> Decimal | None:
    if raw is None:
        return None
    try:
        value = raw if isinstance(raw, Decimal) else Decimal(str(raw))
    except (InvalidOperation, TypeError, ValueError):
        raise CouponValidationError(f"{field} must be a number", field=field) from None
    if not value.is_finite() or value < 0 or (value == 0 and not allow_zero):
        qualifier = "0 or more" if allow_zero else "greater than 0"
        raise CouponValidationError(f"{field} must be {qualifier}", field=field)
    return value


def ensure_usage_within_limit(current_uses: int, max_uses: int | None) -> None:
    if max_uses is not None and current_uses > max_uses:
        raise CouponValidationError(
            f"max_uses cannot be lower than the {current_uses} uses already recorded", field="max_uses"
        )
