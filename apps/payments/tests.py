from __future__ import annotations

import json
from decimal import Decimal
from unittest.mock import patch

from django.apps import apps as django_apps
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ImproperlyConfigured
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIClient

from apps.coupons.domain.errors import CouponNotApplicableError
from apps.coupons.models import Coupon, CouponUsage
from apps.payments.application.registry import PaymentGatewayRegistry
from apps.payments.application.services.audit_trail import replay_status
from apps.payments.application.services.status_transitions import StatusChange, idempotency_key_for
from apps.payments.application.use_cases.cancel_payment import CancelPaymentCommand, CancelPaymentUseCase
from apps.payments.application.use_cases.checkout import CheckoutCommand, CheckoutUseCase
from apps.payments.application.use_cases.create_card_payment import CardInput
from apps.payments.application.use_cases.get_checkout_status import GetCheckoutStatusCommand, GetCheckoutStatusUseCase
from apps.payments.application.use_cases.get_payment_status import GetPaymentStatusCommand, GetPaymentStatusUseCase
from apps.payments.application.use_cases.handle_webhook_event import (
    HandleWebhookEventCommand,
    HandleWebhookEventUseCase,
)
from apps.payments.application.use_cases.refund_payment import RefundPaymentCommand, RefundPaymentUseCase
from apps.payments.application.use_cases.revenue_splits import (
    GetInstructorEarningsUseCase,
    SimulateRevenueSplitCommand,
    SimulateRevenueSplitUseCase,
    UpdateRevenueSplitStatusCommand,
    UpdateRevenueSplitStatusUseCase,
)
from apps.payments.application.use_cases.update_payment_status import (
    UpdatePaymentStatusCommand,
    UpdatePaymentStatusUseCase,
)
from apps.payments.domain.errors import (
    GatewayNotRegisteredError,
    ImmutableRecordError,
    InvalidTransitionError,
    PaymentGatewayError,
    PaymentNotFoundError,
    PaymentRetentionError,
    PaymentValidationError,
    WebhookPayloadError,
    WebhookSignatureError,
)
from apps.payments.domain.fees import (
    allocate_net_amount,
    calculate_payment_fee,
    calculate_revenue_split,
    describe_payment_fee,
)
from apps.payments.domain.policies import ensure_amounts_consistent
from apps.payments.domain.state_machine import PaymentStateMachine
from apps.payments.domain.types import DEFAULT_FEES, EventSource, GatewayPayment, WebhookEventType
from apps.payments.infrastructure.gateways.normalizer import SandboxWebhookNormalizer
from apps.payments.infrastructure.gateways.sandbox_gateway import DECLINED_CARD_NUMBER, SandboxGateway
from apps.payments.infrastructure.wiring import build_gateway_registry
from apps.payments.models import Payment, PaymentTransaction, RevenueSplit

SECRET = "whsec_test"


def _registry() -> tuple[PaymentGatewayRegistry, SandboxGateway]:
    gateway = SandboxGateway(webhook_secret=SECRET)
    registry = PaymentGatewayRegistry()
    registry.register(gateway)
    return registry, gateway


def _card(number: str = "4111111111111111") -> CardInput:
    return CardInput(
        number=number,
        exp_month="12",
        exp_year="2030",
        cvv="123",
        holder_name="Maria Silva",
        holder_email="maria@example.com",
        holder_document="12345678909",
        holder_postal_code="01001000",
    )


def _checkout(registry, **overrides):
    fields = {
        "student_id": "student-1",
        "student_name": "Maria Silva",
        "student_email": "maria@example.com",
        "student_document": "12345678909",
        "course_id": "course-1",
        "course_name": "Gestão Condominial",
        "amount": Decimal("100.00"),
        "payment_method": "pix",
        "instructor_id": "inst-1",
    }
    fields.update(overrides)
    return CheckoutUseCase(registry).execute(CheckoutCommand(**fields))


class FeeEngineTests(SimpleTestCase):
    def test_fee_per_method(self):
        self.assertEqual(calculate_payment_fee(Decimal("100"), "pix", DEFAULT_FEES), Decimal("0.99"))
        self.assertEqual(calculate_payment_fee(Decimal("100"), "boleto", DEFAULT_FEES), Decimal("2.99"))
        self.assertEqual(calculate_payment_fee(Decimal("100"), "card", DEFAULT_FEES), Decimal("3.48"))
        self.assertEqual(calculate_payment_fee(Decimal("100"), "credit_card", DEFAULT_FEES), Decimal("3.48"))
        self.assertEqual(calculate_payment_fee(Decimal("100"), "crypto", DEFAULT_FEES), Decimal("0"))

    def test_method_lookup_ignores_case(self):
        self.assertEqual(calculate_payment_fee(Decimal("100"), " PIX ", DEFAULT_FEES), Decimal("0.99"))

    def test_boleto_split_is_unrounded(self):
        split = calculate_revenue_split(Decimal("100"), "boleto", 70, 30)
        self.assertEqual(split.payment_fee, Decimal("2.99"))
        self.assertEqual(split.net_amount, Decimal("97.01"))
        self.assertEqual(split.instructor_amount, Decimal("67.907"))
        self.assertEqual(split.platform_amount, Decimal("29.103"))
        self.assertEqual(split.payment_fee_description, "Boleto: R$ 2.99 fixo")

    def test_fee_descriptions(self):
        self.assertEqual(describe_payment_fee("pix"), "PIX: 0.99%")
        self.assertEqual(describe_payment_fee("card"), "Cartão: 2.99% + R$ 0.49")
        self.assertEqual(describe_payment_fee("crypto"), "Método desconhecido")

    def test_allocation_never_exceeds_net(self):
        instructor, platform = allocate_net_amount(Decimal("10.01"), 50, 50)
        self.assertEqual(instructor, Decimal("5.01"))
        self.assertEqual(platform, Decimal("5.00"))

    def test_allocation_rounds_half_up(self):
        self.assertEqual(allocate_net_amount(Decimal("97.01"), 70, 30), (Decimal("67.91"), Decimal("29.10")))


class PaymentStateMachineTests(SimpleTestCase):
    def test_allowed_and_rejected_transitions(self):
        self.assertTrue(PaymentStateMachine.can_transition("pending", "confirmed"))
        self.assertTrue(PaymentStateMachine.can_transition("received", "partially_refunded"))
        self.assertFalse(PaymentStateMachine.can_transition("refunded", "received"))
        self.assertFalse(PaymentStateMachine.can_transition("received", "pending"))
        self.assertFalse(PaymentStateMachine.can_transition("pending", "teleported"))

    def test_terminal_statuses(self):
        for status in ("refunded", "chargeback", "failed", "cancelled"):
            self.assertTrue(PaymentStateMachine.is_terminal(status), status)
        self.assertFalse(PaymentStateMachine.is_terminal("pending"))


class PaymentAmountPolicyTests(SimpleTestCase):
    def _check(self, **overrides):
        amounts = {
            "gross_amount": Decimal("200.00"),
            "discount_amount": Decimal("20.00"),
            "gateway_fee": Decimal("1.78"),
            "net_amount": Decimal("178.22"),
            "refunded_amount": Decimal("0.00"),
        }
        amounts.update(overrides)
        ensure_amounts_consistent(**amounts)

    def test_consistent_amounts_pass(self):
        self._check()
        self._check(net_amount=Decimal("178.21"))

    def test_net_must_equal_gross_minus_discount_and_fee(self):
        with self.assertRaises(PaymentValidationError) as ctx:
            self._check(net_amount=Decimal("180.00"))
        self.assertEqual(ctx.exception.field, "net_amount")

    def test_refund_cannot_exceed_gross(self):
        with self.assertRaises(PaymentValidationError) as ctx:
            self._check(refunded_amount=Decimal("200.01"))
        self.assertEqual(ctx.exception.field, "refunded_amount")


class GatewayRegistryTests(SimpleTestCase):
    def test_lookup_is_case_insensitive(self):
        registry, gateway = _registry()
        self.assertIs(registry.get("SANDBOX"), gateway)
        self.assertEqual(registry.available_providers(), [{"code": "sandbox", "name": "Sandbox Gateway"}])

    def test_unknown_provider_raises(self):
        registry, _ = _registry()
        with self.assertRaises(GatewayNotRegisteredError):
            registry.get("stripe")
        with self.assertRaises(GatewayNotRegisteredError):
            registry.set_active("stripe")

    def test_active_falls_back_to_first_registered(self):
        registry, gateway = _registry()
        self.assertIs(registry.get_active(), gateway)
        with self.assertRaises(GatewayNotRegisteredError):
            PaymentGatewayRegistry().get_active()

    def test_build_from_settings_style_config(self):
        registry = build_gateway_registry(
            {
                "sandbox": {
                    "BACKEND": "apps.payments.infrastructure.gateways.sandbox_gateway.SandboxGateway",
                    "OPTIONS": {"webhook_secret": SECRET, "fees": {"boleto_fixed": "3.49"}},
                }
            },
            "sandbox",
        )
        self.assertEqual(registry.get_active().get_fees().boleto_fixed, Decimal("3.49"))

    def test_build_rejects_mismatched_code(self):
        with self.assertRaises(ImproperlyConfigured):
            build_gateway_registry(
                {"asaas": {"BACKEND": "apps.payments.infrastructure.gateways.sandbox_gateway.SandboxGateway"}}, ""
            )
        with self.assertRaises(ImproperlyConfigured):
            build_gateway_registry({"sandbox": {}}, "")

    def test_gateway_without_webhook_secret_rejects_every_notification(self):
        with self.assertLogs("condotrack.payments", level="WARNING") as logs:
            registry = build_gateway_registry(
                {
                    "sandbox": {
                        "BACKEND": "apps.payments.infrastructure.gateways.sandbox_gateway.SandboxGateway",
                        "OPTIONS": {"webhook_secret": ""},
                    }
                },
                "sandbox",
            )
        self.assertIn("payment_gateway_webhook_secret_missing", logs.output[0])
        gateway = registry.get("sandbox")
        body = b'{"id": "evt_1", "event": "PAYMENT_RECEIVED", "payment": {"id": "pay_1"}}'
        forged = {"X-Sandbox-Signature": SandboxWebhookNormalizer("").sign(body)}
        self.assertFalse(gateway.validate_webhook_signature(headers=forged, body=body))


class WebhookNormalizerTests(SimpleTestCase):
    def setUp(self):
        self.normalizer = SandboxWebhookNormalizer(SECRET)

    def _body(self, event="PAYMENT_RECEIVED", **payment):
        return json.dumps({"id": "evt_1", "event": event, "payment": {"id": "pay_1", **payment}}).encode("utf-8")

    def test_signature_check(self):
        body = self._body(status="RECEIVED")
        headers = {"X-Sandbox-Signature": self.normalizer.sign(body)}
        self.assertTrue(self.normalizer.validate_signature(headers=headers, body=body))
        self.assertFalse(self.normalizer.validate_signature(headers=headers, body=body + b" "))
        self.assertFalse(self.normalizer.validate_signature(headers={}, body=body))
        self.assertFalse(SandboxWebhookNormalizer("").validate_signature(headers=headers, body=body))

    def test_parse_maps_to_canonical_event(self):
        body = self._body(status="RECEIVED", value="100.00", netValue="99.01", billingType="PIX", paymentDate="2024-05-02")
        event = self.normalizer.parse(headers={}, body=body)
        self.assertEqual(event.event_type, WebhookEventType.PAYMENT_RECEIVED)
        self.assertEqual(event.status, "received")
        self.assertEqual(event.gateway_raw_status, "RECEIVED")
        self.assertEqual(event.net_amount, Decimal("99.01"))
        self.assertEqual(event.billing_type, "pix")
        self.assertEqual(event.paid_at.isoformat(), "2024-05-02T00:00:00+00:00")
        self.assertEqual(event.raw_payload, body)

    def test_unknown_event_still_parses(self):
        event = self.normalizer.parse(headers={}, body=self._body(event="PAYMENT_SPLIT_DIVERGENCE"))
        self.assertEqual(event.event_type, WebhookEventType.UNKNOWN)
        self.assertIsNone(event.status)

    def test_status_implied_by_event_when_missing(self):
        event = self.normalizer.parse(headers={}, body=self._body(event="PAYMENT_CONFIRMED"))
        self.assertEqual(event.status, "confirmed")

    def test_malformed_body_raises(self):
        with self.assertRaises(WebhookPayloadError):
            self.normalizer.parse(headers={}, body=b"not json")
        with self.assertRaises(WebhookPayloadError):
            self.normalizer.parse(headers={}, body=b'{"event": "PAYMENT_RECEIVED"}')


class CheckoutTests(TestCase):
    def setUp(self):
        self.registry, self.gateway = _registry()

    def test_pix_checkout_creates_pending_payment(self):
        result = _checkout(self.registry)
        payment = result.payment
        self.assertEqual(payment.status, "pending")
        self.assertEqual(payment.gateway, "sandbox")
        self.assertEqual(payment.gateway_fee, Decimal("0.99"))
        self.assertEqual(payment.net_amount, Decimal("99.01"))
        self.assertTrue(result.gateway_payment.pix_copy_paste)
        history = list(payment.transactions.all())
        self.assertEqual([(t.previous_status, t.new_status, t.event_type) for t in history], [(None, "pending", "created")])
        self.assertFalse(RevenueSplit.objects.filter(payment=payment).exists())

    def test_card_checkout_settles_synchronously(self):
        result = _checkout(self.registry, payment_method="card", card=_card(), installments=3)
        payment = result.payment
        self.assertEqual(payment.status, "confirmed")
        self.assertEqual(payment.installment_count, 3)
        self.assertIsNotNone(payment.paid_at)
        self.assertEqual(
            [t.event_type for t in payment.transactions.all()],
            ["created", "status_changed"],
        )
        split = RevenueSplit.objects.get(payment=payment)
        self.assertEqual(split.net_amount, Decimal("96.52"))
        self.assertEqual(split.instructor_amount + split.platform_amount, Decimal("96.52"))

    def test_declined_card_writes_nothing(self):
        with self.assertRaises(PaymentGatewayError):
            _checkout(self.registry, payment_method="card", card=_card(DECLINED_CARD_NUMBER))
        self.assertEqual(Payment.objects.count(), 0)
        self.assertEqual(PaymentTransaction.objects.count(), 0)

    def test_card_checkout_requires_card(self):
        with self.assertRaises(PaymentValidationError) as ctx:
            _checkout(self.registry, payment_method="card")
        self.assertEqual(ctx.exception.field, "card_number")

    def test_unsupported_method_is_rejected(self):
        with self.assertRaises(PaymentValidationError) as ctx:
            _checkout(self.registry, payment_method="crypto")
        self.assertEqual(ctx.exception.field, "payment_method")

    def test_coupon_discount_is_charged_and_redeemed_on_settlement(self):
        coupon = Coupon.objects.create(code="WELCOME10", discount_type="percentage", discount_value=Decimal("10"))
        result = _checkout(self.registry, amount=Decimal("200.00"), discount_code="welcome10")
        payment = result.payment
        self.assertEqual(result.coupon_code, "WELCOME10")
        self.assertEqual(payment.discount_amount, Decimal("20.00"))
        self.assertEqual(payment.gateway_fee, Decimal("1.78"))
        self.assertEqual(payment.net_amount, Decimal("178.22"))
        self.assertEqual(self.gateway.get_payment(payment.gateway_payment_id).amount, Decimal("180.00"))
        coupon.refresh_from_db()
        self.assertEqual(coupon.current_uses, 0)

        headers, body = self.gateway.build_webhook(
            event="PAYMENT_RECEIVED", gateway_payment_id=payment.gateway_payment_id, status="RECEIVED"
        )
        HandleWebhookEventUseCase(self.registry).execute(
            HandleWebhookEventCommand(provider_code="sandbox", headers=headers, body=body)
        )
        coupon.refresh_from_db()
        self.assertEqual(coupon.current_uses, 1)
        usage = CouponUsage.objects.get(payment=payment)
        self.assertEqual(usage.final_amount, Decimal("180.00"))
        self.assertEqual(RevenueSplit.objects.get(payment=payment).gross_amount, Decimal("180.00"))

    def test_unknown_coupon_aborts_checkout(self):
        with self.assertRaises(CouponNotApplicableError):
            _checkout(self.registry, discount_code="NOPE")
        self.assertEqual(Payment.objects.count(), 0)

    def test_fully_discounted_order_is_confirmed_without_gateway(self):
        coupon = Coupon.objects.create(code="FREE500", discount_type="fixed", discount_value=Decimal("500"))
        result = _checkout(self.registry, discount_code="FREE500")
        payment = result.payment
        self.assertEqual(payment.status, "confirmed")
        self.assertEqual(payment.gateway, "free")
        self.assertEqual(payment.payment_method, "free")
        self.assertEqual(payment.discount_amount, Decimal("100.00"))
        self.assertEqual(payment.net_amount, Decimal("0.00"))
        self.assertIsNone(result.gateway_payment)
        coupon.refresh_from_db()
        self.assertEqual(coupon.current_uses, 1)

    def test_persistence_failure_cancels_the_charge(self):
        with patch.object(self.gateway, "cancel_payment", wraps=self.gateway.cancel_payment) as cancel, patch.object(
            CheckoutUseCase, "_record", side_effect=DatabaseError("disk full")
        ):
            with self.assertRaises(DatabaseError):
                _checkout(self.registry)
        cancel.assert_called_once()
        self.assertEqual(self.gateway.get_payment(cancel.call_args.args[0]).status, "cancelled")
        self.assertEqual(Payment.objects.count(), 0)

    def test_response_split_matches_recorded_fee_when_fee_is_clamped(self):
        gateway = SandboxGateway(webhook_secret=SECRET, fees={"boleto_fixed": "500"})
        registry = PaymentGatewayRegistry()
        registry.register(gateway)
        result = _checkout(registry, payment_method="boleto")
        payment = result.payment
        self.assertEqual(payment.gateway_fee, Decimal("100.00"))
        self.assertEqual(payment.net_amount, Decimal("0.00"))
        self.assertEqual(result.split.payment_fee, payment.gateway_fee)
        self.assertEqual(result.split.net_amount, payment.net_amount)
        self.assertEqual(result.split.instructor_amount + result.split.platform_amount, Decimal("0.00"))

    def test_inconsistent_amounts_are_never_recorded(self):
        fields = {
            "enrollment_id": "enr-x",
            "payer_name": "Maria Silva",
            "gross_amount": Decimal("100.00"),
            "discount_amount": Decimal("0.00"),
            "gateway_fee": Decimal("0.99"),
            "net_amount": Decimal("95.00"),
            "payment_method": "pix",
            "gateway": "sandbox",
        }
        remote = GatewayPayment(
            gateway_payment_id="pay_x",
            status="pending",
            gateway_raw_status="PENDING",
            amount=Decimal("100.00"),
            billing_type="pix",
        )
        with self.assertRaises(PaymentValidationError) as ctx:
            CheckoutUseCase._record(fields, remote)
        self.assertEqual(ctx.exception.field, "net_amount")
        self.assertEqual(Payment.objects.count(), 0)

    def test_checkout_status_reports_latest_payment(self):
        first = _checkout(self.registry, enrollment_id="enr-poll", payment_method="boleto").payment
        CancelPaymentUseCase(self.registry).execute(CancelPaymentCommand(payment_id=str(first.pk)))
        latest = _checkout(self.registry, enrollment_id="enr-poll").payment

        result = GetCheckoutStatusUseCase(self.registry).execute(GetCheckoutStatusCommand(enrollment_id="enr-poll"))
        self.assertEqual(result.payment.pk, latest.pk)
        self.assertEqual(result.gateway_status, "pending")
        self.assertTrue(result.gateway_payment.pix_copy_paste)
        self.assertEqual(result.split.net_amount, Decimal("99.01"))
        self.assertEqual(result.split.instructor_amount, Decimal("69.31"))
        self.assertEqual(result.split.platform_amount, Decimal("29.70"))

        with self.assertRaises(PaymentNotFoundError):
            GetCheckoutStatusUseCase(self.registry).execute(GetCheckoutStatusCommand(enrollment_id="enr-none"))

    def test_checkout_status_survives_gateway_outage(self):
        _checkout(self.registry, enrollment_id="enr-down")
        with patch.object(self.gateway, "get_payment", side_effect=PaymentGatewayError("timeout")):
            result = GetCheckoutStatusUseCase(self.registry).execute(GetCheckoutStatusCommand(enrollment_id="enr-down"))
        self.assertEqual(result.payment.status, "pending")
        self.assertIsNone(result.gateway_status)
        self.assertIsNone(result.gateway_payment)


class WebhookProcessingTests(TestCase):
    def setUp(self):
        self.registry, self.gateway = _registry()
        self.payment = _checkout(self.registry).payment
        self.use_case = HandleWebhookEventUseCase(self.registry)

    def _deliver(self, **kwargs):
        kwargs.setdefault("gateway_payment_id", self.payment.gateway_payment_id)
        headers, body = self.gateway.build_webhook(**kwargs)
        return self.use_case.execute(HandleWebhookEventCommand(provider_code="sandbox", headers=headers, body=body))

    def test_received_event_settles_payment_and_splits_revenue(self):
        result = self._deliver(event="PAYMENT_RECEIVED", status="RECEIVED", event_id="evt_1")
        self.assertEqual(result.outcome, "applied")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, "received")
        self.assertIsNotNone(self.payment.paid_at)
        split = RevenueSplit.objects.get(payment=self.payment)
        self.assertEqual(split.net_amount, Decimal("99.01"))
        self.assertEqual(split.instructor_amount, Decimal("69.31"))
        self.assertEqual(split.platform_amount, Decimal("29.70"))
        self.assertEqual(split.instructor_id, "inst-1")

    def test_replayed_event_is_a_no_op(self):
        headers, body = self.gateway.build_webhook(
            event="PAYMENT_RECEIVED",
            gateway_payment_id=self.payment.gateway_payment_id,
            status="RECEIVED",
            event_id="evt_dup",
        )
        command = HandleWebhookEventCommand(provider_code="sandbox", headers=headers, body=body)
        first = self.use_case.execute(command)
        second = self.use_case.execute(command)
        self.assertEqual(first.outcome, "applied")
        self.assertEqual(second.outcome, "duplicate")
        self.assertEqual(PaymentTransaction.objects.filter(payment=self.payment, gateway_event_id="evt_dup").count(), 1)
        self.assertEqual(RevenueSplit.objects.filter(payment=self.payment).count(), 1)

    def test_unreachable_status_is_recorded_as_error(self):
        self._deliver(event="PAYMENT_RECEIVED", status="RECEIVED", event_id="evt_1")
        result = self._deliver(event="PAYMENT_CREATED", status="PENDING", event_id="evt_2")
        self.assertEqual(result.outcome, "rejected")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, "received")
        anomaly = PaymentTransaction.objects.filter(payment=self.payment).last()
        self.assertEqual(anomaly.event_type, "error")
        self.assertEqual((anomaly.previous_status, anomaly.new_status), ("received", "received"))
        self.assertEqual(anomaly.request_metadata["requested_status"], "pending")

    def test_bad_signature_is_rejected_before_processing(self):
        headers, body = self.gateway.build_webhook(
            event="PAYMENT_RECEIVED", gateway_payment_id=self.payment.gateway_payment_id, status="RECEIVED"
        )
        with self.assertRaises(WebhookSignatureError):
            self.use_case.execute(
                HandleWebhookEventCommand(provider_code="sandbox", headers={"X-Sandbox-Signature": "sha256=00"}, body=body)
            )
        self.assertEqual(PaymentTransaction.objects.filter(payment=self.payment).count(), 1)

    def test_unmapped_and_unmatched_events_are_ignored(self):
        unknown = self._deliver(event="PAYMENT_SPLIT_DIVERGENCE", status="RECEIVED")
        self.assertEqual((unknown.outcome, unknown.reason), ("ignored", "unmapped_event"))
        missing = self._deliver(event="PAYMENT_RECEIVED", status="RECEIVED", gateway_payment_id="pay_elsewhere")
        self.assertEqual((missing.outcome, missing.reason), ("ignored", "payment_not_found"))

    def test_failure_rolls_back_status_and_audit_entry(self):
        coupon = Coupon.objects.create(code="ROLL", discount_type="fixed", discount_value=Decimal("1"))
        Payment.objects.filter(pk=self.payment.pk).update(coupon=coupon)
        with patch(
            "apps.payments.application.services.status_transitions.CouponRedemptionService.redeem",
            side_effect=DatabaseError("connection lost"),
        ):
            with self.assertRaises(DatabaseError):
                self._deliver(event="PAYMENT_RECEIVED", status="RECEIVED", event_id="evt_1")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, "pending")
        self.assertEqual(PaymentTransaction.objects.filter(payment=self.payment).count(), 1)
        self.assertFalse(RevenueSplit.objects.filter(payment=self.payment).exists())

    def test_history_replays_to_current_status(self):
        self._deliver(event="PAYMENT_CONFIRMED", status="CONFIRMED", event_id="evt_1")
        self._deliver(event="PAYMENT_OVERDUE", status="OVERDUE", event_id="evt_2")
        self._deliver(event="PAYMENT_RECEIVED", status="RECEIVED", event_id="evt_3")
        self.payment.refresh_from_db()
        history = list(PaymentTransaction.objects.filter(payment=self.payment))
        self.assertEqual(replay_status(history), self.payment.status)
        self.assertEqual(self.payment.status, "received")

    def test_fallback_idempotency_key(self):
        change = StatusChange(new_status="received", event_source=EventSource.WEBHOOK)
        self.assertEqual(idempotency_key_for(self.payment, change), f"{self.payment.pk}:received:")
        self.assertEqual(idempotency_key_for(self.payment, StatusChange("received", EventSource.MANUAL)), "")


class AuditTrailImmutabilityTests(TestCase):
    def setUp(self):
        registry, _ = _registry()
        self.payment = _checkout(registry).payment

    def test_transactions_cannot_be_edited_or_deleted(self):
        tx = self.payment.transactions.first()
        tx.description = "rewritten"
        with self.assertRaises(ImmutableRecordError):
            tx.save()
        with self.assertRaises(ImmutableRecordError):
            tx.delete()
        with self.assertRaises(ImmutableRecordError):
            PaymentTransaction.objects.filter(payment=self.payment).update(description="x")
        with self.assertRaises(ImmutableRecordError):
            PaymentTransaction.objects.filter(payment=self.payment).delete()

    def test_payments_are_retained(self):
        with self.assertRaises(PaymentRetentionError):
            self.payment.delete()
        with self.assertRaises(PaymentRetentionError):
            Payment.objects.all().delete()


class PaymentOperationsTests(TestCase):
    def setUp(self):
        self.registry, self.gateway = _registry()

    def test_status_lookup_prefers_local_ledger(self):
        payment = _checkout(self.registry).payment
        result = GetPaymentStatusUseCase(self.registry).execute(GetPaymentStatusCommand(payment_id=str(payment.pk)))
        self.assertEqual((result.source, result.status, result.gateway_status), ("local", "pending", "pending"))

    def test_status_lookup_falls_back_to_gateway_id(self):
        payment = _checkout(self.registry).payment
        result = GetPaymentStatusUseCase(self.registry).execute(
            GetPaymentStatusCommand(payment_id=payment.gateway_payment_id)
        )
        self.assertEqual(result.source, "gateway")
        self.assertEqual(result.gateway_payment.gateway_payment_id, payment.gateway_payment_id)
        with self.assertRaises(PaymentNotFoundError):
            GetPaymentStatusUseCase(self.registry).execute(GetPaymentStatusCommand(payment_id="pay_missing"))

    def test_partial_then_full_refund(self):
        payment = _checkout(self.registry, payment_method="card", card=_card()).payment
        use_case = RefundPaymentUseCase(self.registry)
        payment = use_case.execute(RefundPaymentCommand(payment_id=str(payment.pk), amount=Decimal("40.00")))
        self.assertEqual(payment.status, "partially_refunded")
        self.assertEqual(payment.refunded_amount, Decimal("40.00"))

        payment = use_case.execute(RefundPaymentCommand(payment_id=str(payment.pk)))
        self.assertEqual(payment.status, "refunded")
        self.assertEqual(payment.refunded_amount, Decimal("100.00"))
        self.assertEqual(RevenueSplit.objects.get(payment=payment).status, RevenueSplit.STATUS_FAILED)

    def test_refund_of_open_payment_is_a_conflict(self):
        payment = _checkout(self.registry).payment
        with self.assertRaises(InvalidTransitionError):
            RefundPaymentUseCase(self.registry).execute(RefundPaymentCommand(payment_id=str(payment.pk)))

    def test_refund_above_balance_is_rejected(self):
        payment = _checkout(self.registry, payment_method="card", card=_card()).payment
        with self.assertRaises(PaymentValidationError):
            RefundPaymentUseCase(self.registry).execute(
                RefundPaymentCommand(payment_id=str(payment.pk), amount=Decimal("100.01"))
            )

    def test_cancel_pending_payment(self):
        payment = _checkout(self.registry, payment_method="boleto").payment
        payment = CancelPaymentUseCase(self.registry).execute(CancelPaymentCommand(payment_id=str(payment.pk)))
        self.assertEqual(payment.status, "cancelled")
        self.assertIsNotNone(payment.cancelled_at)
        self.assertEqual(self.gateway.get_payment(payment.gateway_payment_id).status, "cancelled")

    def test_cancel_settled_payment_is_a_conflict(self):
        payment = _checkout(self.registry, payment_method="card", card=_card()).payment
        with self.assertRaises(InvalidTransitionError):
            CancelPaymentUseCase(self.registry).execute(CancelPaymentCommand(payment_id=str(payment.pk)))

    def test_cancel_loses_race_with_settlement(self):
        payment = _checkout(self.registry, payment_method="boleto").payment
        original_cancel = self.gateway.cancel_payment

        def settle_then_cancel(gateway_payment_id):
            Payment.objects.filter(pk=payment.pk).update(status="confirmed")
            return original_cancel(gateway_payment_id)

        with patch.object(self.gateway, "cancel_payment", side_effect=settle_then_cancel):
            with self.assertRaises(InvalidTransitionError) as ctx:
                CancelPaymentUseCase(self.registry).execute(CancelPaymentCommand(payment_id=str(payment.pk)))
        self.assertEqual(ctx.exception.current_status, "confirmed")
        payment.refresh_from_db()
        self.assertEqual(payment.status, "confirmed")
        self.assertEqual(PaymentTransaction.objects.filter(payment=payment).last().event_type, "error")

    def test_manual_status_update(self):
        payment = _checkout(self.registry).payment
        result = UpdatePaymentStatusUseCase.execute(
            UpdatePaymentStatusCommand(payment_id=str(payment.pk), new_status="overdue", reason="past due")
        )
        self.assertEqual(result.payment.status, "overdue")
        self.assertEqual(result.transaction.event_source, "manual")

    def test_manual_update_to_unreachable_status_keeps_error_entry(self):
        payment = _checkout(self.registry, payment_method="card", card=_card()).payment
        with self.assertRaises(InvalidTransitionError):
            UpdatePaymentStatusUseCase.execute(UpdatePaymentStatusCommand(payment_id=str(payment.pk), new_status="pending"))
        self.assertEqual(PaymentTransaction.objects.filter(payment=payment).last().event_type, "error")
        with self.assertRaises(PaymentValidationError):
            UpdatePaymentStatusUseCase.execute(UpdatePaymentStatusCommand(payment_id=str(payment.pk), new_status="lost"))


class RevenueSplitTests(TestCase):
    def setUp(self):
        self.registry, _ = _registry()

    def test_simulation_uses_configured_percentages(self):
        split = SimulateRevenueSplitUseCase(self.registry).execute(
            SimulateRevenueSplitCommand(amount=Decimal("100"), payment_method="boleto")
        )
        self.assertEqual(split.net_amount, Decimal("97.01"))
        self.assertEqual(split.instructor_percent, Decimal(str(settings.REVENUE_INSTRUCTOR_PERCENT)))

    def test_simulation_rejects_out_of_range_percent(self):
        with self.assertRaises(PaymentValidationError):
            SimulateRevenueSplitUseCase(self.registry).execute(
                SimulateRevenueSplitCommand(amount=Decimal("100"), payment_method="pix", instructor_percent=Decimal("101"))
            )

    def test_pending_split_is_processed_once(self):
        payment = _checkout(self.registry, payment_method="card", card=_card()).payment
        split = RevenueSplit.objects.get(payment=payment)
        split = UpdateRevenueSplitStatusUseCase.execute(UpdateRevenueSplitStatusCommand(split_id=split.pk, status="processed"))
        self.assertEqual(split.status, "processed")
        self.assertIsNotNone(split.processed_at)
        with self.assertRaises(InvalidTransitionError):
            UpdateRevenueSplitStatusUseCase.execute(UpdateRevenueSplitStatusCommand(split_id=split.pk, status="failed"))

    def test_instructor_earnings(self):
        first = _checkout(self.registry, payment_method="card", card=_card()).payment
        _checkout(self.registry, payment_method="card", card=_card(), student_id="student-2")
        UpdateRevenueSplitStatusUseCase.execute(
            UpdateRevenueSplitStatusCommand(split_id=first.revenue_split.pk, status="processed")
        )
        earnings = GetInstructorEarningsUseCase.execute("inst-1")
        self.assertEqual(earnings.processed, Decimal("67.56"))
        self.assertEqual(earnings.pending, Decimal("67.56"))
        self.assertEqual(earnings.total, Decimal("135.12"))


class PaymentsApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = get_user_model().objects.create_user(username="operator", password="StrongPass12345!")
        self.registry, self.gateway = _registry()
        patcher = patch.object(django_apps.get_app_config("payments"), "gateway_registry", self.registry)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _checkout(self, **overrides):
        payload = {
            "student_name": "Maria Silva",
            "student_email": "maria@example.com",
            "student_cpf": "12345678909",
            "course_id": "course-1",
            "course_name": "Gestão Condominial",
            "amount": "150.00",
            "payment_method": "pix",
        }
        payload.update(overrides)
        return self.client.post("/api/checkout/", data=payload, format="json")

    def test_checkout_is_public_and_returns_pix_data(self):
        response = self._checkout()
        self.assertEqual(response.status_code, 201)
        data = response.json()["data"]
        self.assertEqual(data["status"], "pending")
        self.assertEqual(data["payment_fee"], "1.49")
        self.assertTrue(data["pix_copy_paste"])
        self.assertTrue(Payment.objects.filter(pk=data["payment_id"]).exists())

    def test_checkout_status_is_public(self):
        created = self._checkout().json()["data"]
        response = self.client.get(f"/api/checkout/{created['enrollment_id']}/status/")
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["payment_id"], created["payment_id"])
        self.assertEqual(data["status"], "pending")
        self.assertEqual(data["gateway_status"], "pending")
        self.assertEqual(data["payment_fee"], created["payment_fee"])
        self.assertEqual(data["net_amount"], "148.51")
        self.assertTrue(data["pix_copy_paste"])

        missing = self.client.get("/api/checkout/enr-unknown/status/")
        self.assertEqual(missing.status_code, 404)

    def test_checkout_validation_error(self):
        response = self._checkout(payment_method="crypto")
        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["error"]["field"], "payment_method")

    def test_webhook_endpoint_statuses(self):
        payment = Payment.objects.get(pk=self._checkout().json()["data"]["payment_id"])
        headers, body = self.gateway.build_webhook(
            event="PAYMENT_RECEIVED", gateway_payment_id=payment.gateway_payment_id, status="RECEIVED"
        )
        signature = headers["X-Sandbox-Signature"]

        ok = self.client.post(
            "/api/webhooks/sandbox/", data=body, content_type="application/json", HTTP_X_SANDBOX_SIGNATURE=signature
        )
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.json()["data"]["outcome"], "applied")

        replay = self.client.post(
            "/api/webhooks/sandbox/", data=body, content_type="application/json", HTTP_X_SANDBOX_SIGNATURE=signature
        )
        self.assertEqual(replay.status_code, 200)
        self.assertEqual(replay.json()["data"]["outcome"], "duplicate")

        forged = self.client.post(
            "/api/webhooks/sandbox/", data=body, content_type="application/json", HTTP_X_SANDBOX_SIGNATURE="sha256=00"
        )
        self.assertEqual(forged.status_code, 401)

        unknown = self.client.post("/api/webhooks/pagseguro/", data=body, content_type="application/json")
        self.assertEqual(unknown.status_code, 404)

        malformed = b"{not json"
        bad = self.client.post(
            "/api/webhooks/sandbox/",
            data=malformed,
            content_type="application/json",
            HTTP_X_SANDBOX_SIGNATURE=SandboxWebhookNormalizer(SECRET).sign(malformed),
        )
        self.assertEqual(bad.status_code, 400)

    def test_protected_endpoints_require_authentication(self):
        self.assertEqual(self.client.get("/api/payments/").status_code, 401)

    def test_payment_history_and_manual_conflict(self):
        response = self._checkout(
            payment_method="card",
            card_number="4111111111111111",
            card_exp_month="12",
            card_exp_year="2030",
            card_cvv="123",
            holder_name="Maria Silva",
            holder_email="maria@example.com",
            holder_document="12345678909",
            holder_postal_code="01001000",
        )
        self.assertEqual(response.status_code, 201)
        payment_id = response.json()["data"]["payment_id"]
        self.client.force_authenticate(self.user)

        history = self.client.get(f"/api/payments/{payment_id}/transactions/")
        self.assertEqual(history.status_code, 200)
        self.assertEqual(
            [t["event_type"] for t in history.json()["data"]["transactions"]], ["created", "status_changed"]
        )

        conflict = self.client.patch(f"/api/payments/{payment_id}/status/", data={"status": "pending"}, format="json")
        self.assertEqual(conflict.status_code, 409)

        status_view = self.client.get(f"/api/payments/{payment_id}/status/")
        self.assertEqual(status_view.json()["data"]["status"], "confirmed")

    def test_simulate_split_endpoint(self):
        self.client.force_authenticate(self.user)
        response = self.client.get("/api/payments/simulate-split/", {"amount": "100", "method": "boleto"})
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["net_amount"], "97.01")
        self.assertEqual(data["instructor_amount"], "67.91")
        self.assertEqual(data["platform_amount"], "29.10")

    def test_gateway_listing(self):
        self.client.force_authenticate(self.user)
        response = self.client.get("/api/payments/gateways/")
        self.assertEqual(response.json()["data"]["active"], "sandbox")
