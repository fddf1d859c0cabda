from __future__ import annotations

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from apps.coupons.application.services.redemption import (
    MESSAGE_NOT_APPLICABLE,
    MESSAGE_NOT_FOUND,
    MESSAGE_USER_LIMIT,
    MESSAGE_VALID,
    CouponQuoteService,
    CouponRedemptionService,
)
from apps.coupons.application.use_cases.create_coupon import CreateCouponCommand, CreateCouponUseCase
from apps.coupons.application.use_cases.update_coupon import UpdateCouponCommand, UpdateCouponUseCase
from apps.coupons.domain.discount import CouponTerms, applies_to_course, calculate_discount
from apps.coupons.domain.errors import (
    CouponAlreadyExistsError,
    CouponUsageImmutableError,
    CouponValidationError,
)
from apps.coupons.domain.policies import parse_timestamp, validate_discount, validate_scope
from apps.coupons.models import Coupon, CouponUsage
from apps.payments.models import Payment

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=dt_timezone.utc)


def _payment(coupon: Coupon | None = None, user_id: str = "student-1", **fields) -> Payment:
    values = {
        "enrollment_id": "enr-1",
        "payer_user_id": user_id,
        "payer_name": "Maria Silva",
        "gross_amount": Decimal("100.00"),
        "discount_amount": Decimal("10.00"),
        "net_amount": Decimal("90.00"),
        "payment_method": "pix",
        "gateway": "sandbox",
        "coupon": coupon,
        "course_id": "course-1",
    }
    values.update(fields)
    return Payment.objects.create(**values)


class DiscountCalculationTests(SimpleTestCase):
    def test_percentage_discount_is_capped(self):
        terms = CouponTerms(
            code="HALF", discount_type="percentage", discount_value=Decimal("50"), max_discount_amount=Decimal("15")
        )
        self.assertEqual(calculate_discount(terms, Decimal("100"), now=NOW), Decimal("15"))
        self.assertEqual(calculate_discount(terms, Decimal("20"), now=NOW), Decimal("10"))

    def test_fixed_discount_never_exceeds_order(self):
        terms = CouponTerms(code="BIG", discount_type="fixed", discount_value=Decimal("500"))
        self.assertEqual(calculate_discount(terms, Decimal("100"), now=NOW), Decimal("100"))

    def test_discount_stays_within_order_amount(self):
        terms_list = [
            CouponTerms(code="P10", discount_type="percentage", discount_value=Decimal("10")),
            CouponTerms(code="P100", discount_type="percentage", discount_value=Decimal("100")),
            CouponTerms(code="F5", discount_type="fixed", discount_value=Decimal("5")),
            CouponTerms(code="F999", discount_type="fixed", discount_value=Decimal("999")),
            CouponTerms(code="ODD", discount_type="bogus", discount_value=Decimal("10")),
        ]
        for terms in terms_list:
            for amount in ("0", "0.01", "1", "4.99", "20", "99.99", "100", "12345.67"):
                discount = calculate_discount(terms, Decimal(amount), now=NOW)
                self.assertGreaterEqual(discount, 0, (terms.code, amount))
                self.assertLessEqual(discount, Decimal(amount), (terms.code, amount))

    def test_failed_preconditions_yield_zero(self):
        base = {"code": "X", "discount_type": "fixed", "discount_value": Decimal("10")}
        cases = [
            CouponTerms(**base, is_active=False),
            CouponTerms(**base, minimum_order_amount=Decimal("200")),
            CouponTerms(**base, max_uses=3, current_uses=3),
            CouponTerms(**base, starts_at=NOW + timedelta(days=1)),
            CouponTerms(**base, expires_at=NOW - timedelta(seconds=1)),
        ]
        for terms in cases:
            self.assertEqual(calculate_discount(terms, Decimal("100"), now=NOW), Decimal("0"), terms)

    def test_course_scope(self):
        terms = CouponTerms(
            code="C1",
            discount_type="fixed",
            discount_value=Decimal("5"),
            applies_to="specific_courses",
            course_ids=("course-1",),
        )
        self.assertTrue(applies_to_course(terms, "course-1"))
        self.assertFalse(applies_to_course(terms, "course-2"))
        self.assertTrue(applies_to_course(terms, ""))


class CouponPolicyTests(SimpleTestCase):
    def test_discount_validation(self):
        self.assertEqual(validate_discount("Percentage", "25"), ("percentage", Decimal("25")))
        with self.assertRaises(CouponValidationError):
            validate_discount("percentage", "101")
        with self.assertRaises(CouponValidationError):
            validate_discount("fixed", "0")
        with self.assertRaises(CouponValidationError):
            validate_discount("bogo", "10")

    def test_scope_requires_courses(self):
        self.assertEqual(validate_scope("", []), ("all_courses", None))
        self.assertEqual(validate_scope("specific_courses", ["c1", " "]), ("specific_courses", '["c1"]'))
        with self.assertRaises(CouponValidationError):
            validate_scope("specific_courses", [])

    def test_timestamps_need_offset(self):
        self.assertEqual(parse_timestamp("2025-03-01T12:00:00Z", field="starts_at"), NOW)
        with self.assertRaises(CouponValidationError):
            parse_timestamp("2025-03-01T12:00:00", field="starts_at")
        with self.assertRaises(CouponValidationError):
            parse_timestamp("tomorrow", field="starts_at")


class CouponServiceTests(TestCase):
    def setUp(self):
        self.coupon = CreateCouponUseCase.execute(
            CreateCouponCommand(
                code=" promo10 ",
                discount_type="percentage",
                discount_value=Decimal("10"),
                max_uses=2,
                max_uses_per_user=1,
            )
        )

    def test_code_is_normalized_and_unique(self):
        self.assertEqual(self.coupon.code, "PROMO10")
        with self.assertRaises(CouponAlreadyExistsError):
            CreateCouponUseCase.execute(
                CreateCouponCommand(code="PROMO10", discount_type="fixed", discount_value=Decimal("5"))
            )

    def test_quote_messages(self):
        valid = CouponQuoteService.quote(code="promo10", amount=Decimal("80"), user_id="student-1")
        self.assertTrue(valid.valid)
        self.assertEqual(valid.message, MESSAGE_VALID)
        self.assertEqual(valid.final_amount, Decimal("72"))

        missing = CouponQuoteService.quote(code="NOPE", amount=Decimal("80"))
        self.assertEqual((missing.valid, missing.message), (False, MESSAGE_NOT_FOUND))
        self.assertEqual(missing.final_amount, Decimal("80"))

        self.coupon.is_active = False
        self.coupon.save()
        inactive = CouponQuoteService.quote(code="PROMO10", amount=Decimal("80"))
        self.assertEqual(inactive.message, MESSAGE_NOT_APPLICABLE)

    def test_per_user_limit(self):
        CouponRedemptionService.redeem(payment=_payment(self.coupon))
        quote = CouponQuoteService.quote(code="PROMO10", amount=Decimal("80"), user_id="student-1")
        self.assertEqual((quote.valid, quote.message), (False, MESSAGE_USER_LIMIT))
        other = CouponQuoteService.quote(code="PROMO10", amount=Decimal("80"), user_id="student-2")
        self.assertTrue(other.valid)

    def test_redeem_is_once_per_payment(self):
        payment = _payment(self.coupon)
        first = CouponRedemptionService.redeem(payment=payment)
        second = CouponRedemptionService.redeem(payment=payment)
        self.assertEqual(first.pk, second.pk)
        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.current_uses, 1)
        self.assertEqual(first.discount_applied, Decimal("10.00"))
        self.assertEqual(first.final_amount, Decimal("90.00"))

    def test_usage_counter_never_passes_max_uses(self):
        for index in range(3):
            CouponRedemptionService.redeem(payment=_payment(self.coupon, user_id=f"student-{index}"))
        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.current_uses, 2)
        self.assertEqual(CouponUsage.objects.filter(coupon=self.coupon).count(), 3)

    def test_usage_is_immutable(self):
        usage = CouponRedemptionService.redeem(payment=_payment(self.coupon))
        usage.final_amount = Decimal("0")
        with self.assertRaises(CouponUsageImmutableError):
            usage.save()
        with self.assertRaises(CouponUsageImmutableError):
            usage.delete()
        with self.assertRaises(CouponUsageImmutableError):
            CouponUsage.objects.filter(pk=usage.pk).update(final_amount=Decimal("0"))
        with self.assertRaises(CouponUsageImmutableError):
            CouponUsage.objects.filter(pk=usage.pk).delete()
        usage.refresh_from_db()
        self.assertEqual(usage.final_amount, Decimal("90.00"))

    def test_partial_update(self):
        coupon = UpdateCouponUseCase.execute(
            UpdateCouponCommand(
                coupon_id=str(self.coupon.pk),
                changes={"discount_value": Decimal("15"), "expires_at": "2030-01-01T00:00:00-03:00"},
            )
        )
        self.assertEqual(coupon.discount_type, "percentage")
        self.assertEqual(coupon.discount_value, Decimal("15"))
        self.assertEqual(coupon.max_uses, 2)
        self.assertIsNotNone(coupon.expires_at)

    def test_update_keeps_limit_above_recorded_uses(self):
        for index in range(2):
            CouponRedemptionService.redeem(payment=_payment(self.coupon, user_id=f"student-{index}"))
        with self.assertRaises(CouponValidationError) as ctx:
            UpdateCouponUseCase.execute(UpdateCouponCommand(coupon_id=str(self.coupon.pk), changes={"max_uses": 1}))
        self.assertEqual(ctx.exception.field, "max_uses")
        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.max_uses, 2)

    def test_update_validates_amount_limits(self):
        for changes, field in (
            ({"max_discount_amount": Decimal("0")}, "max_discount_amount"),
            ({"minimum_order_amount": Decimal("-1")}, "minimum_order_amount"),
        ):
            with self.assertRaises(CouponValidationError) as ctx:
                UpdateCouponUseCase.execute(UpdateCouponCommand(coupon_id=str(self.coupon.pk), changes=changes))
            self.assertEqual(ctx.exception.field, field)
        coupon = UpdateCouponUseCase.execute(
            UpdateCouponCommand(coupon_id=str(self.coupon.pk), changes={"minimum_order_amount": Decimal("0")})
        )
        self.assertEqual(coupon.minimum_order_amount, Decimal("0"))

    def test_create_rejects_negative_minimum_order(self):
        with self.assertRaises(CouponValidationError) as ctx:
            CreateCouponUseCase.execute(
                CreateCouponCommand(
                    code="NEG",
                    discount_type="fixed",
                    discount_value=Decimal("5"),
                    minimum_order_amount=Decimal("-10"),
                )
            )
        self.assertEqual(ctx.exception.field, "minimum_order_amount")


class CouponApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = get_user_model().objects.create_user(username="admin", password="StrongPass12345!")

    def _create(self, **overrides):
        payload = {"code": "launch", "discount_type": "fixed", "discount_value": "25.00"}
        payload.update(overrides)
        return self.client.post("/api/coupons/", data=payload, format="json")

    def test_management_requires_authentication(self):
        self.assertEqual(self._create().status_code, 401)

    def test_create_list_and_conflict(self):
        self.client.force_authenticate(self.user)
        created = self._create()
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["data"]["code"], "LAUNCH")

        duplicate = self._create()
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["error"]["field"], "code")

        listing = self.client.get("/api/coupons/")
        self.assertEqual(listing.json()["meta"]["total"], 1)

    def test_create_validation_error(self):
        self.client.force_authenticate(self.user)
        response = self._create(discount_type="percentage", discount_value="150")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["field"], "discount_value")

    def test_validate_is_public(self):
        Coupon.objects.create(code="LAUNCH", discount_type="fixed", discount_value=Decimal("25"))
        response = self.client.post(
            "/api/coupons/validate/", data={"code": "launch", "amount": "100.00"}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertTrue(data["valid"])
        self.assertEqual(data["discount_amount"], "25.00")
        self.assertEqual(data["final_amount"], "75.00")

    def test_lowering_max_uses_below_usage_is_a_validation_error(self):
        self.client.force_authenticate(self.user)
        coupon = Coupon.objects.create(
            code="BUSY", discount_type="fixed", discount_value=Decimal("5"), max_uses=5, current_uses=3
        )
        response = self.client.patch(f"/api/coupons/{coupon.pk}/", data={"max_uses": 1}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["field"], "max_uses")
        coupon.refresh_from_db()
        self.assertEqual(coupon.max_uses, 5)

    def test_used_coupon_cannot_be_deleted(self):
        self.client.force_authenticate(self.user)
        coupon = Coupon.objects.create(code="USED", discount_type="fixed", discount_value=Decimal("5"))
        _payment(coupon)
        response = self.client.delete(f"/api/coupons/{coupon.pk}/")
        self.assertEqual(response.status_code, 409)

        unused = Coupon.objects.create(
            code="SPARE", discount_type="fixed", discount_value=Decimal("5"), expires_at=timezone.now()
        )
        self.assertEqual(self.client.delete(f"/api/coupons/{unused.pk}/").status_code, 200)
        self.assertFalse(Coupon.objects.filter(pk=unused.pk).exists())
