"""
Checkout: coupon, gateway charge and ledger row in one call.

PT: Fluxo de checkout de matrícula (cupom, cobrança no gateway e registro do pagamento).
EN: Enrollment checkout. The gateway is called before anything is written;
the ledger row, its first audit entry and any synchronous gateway status are
then committed together. If that commit fails the charge is cancelled on a
best-effort basis.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.db import transaction

from apps.coupons.application.services.redemption import CouponQuoteService
from apps.payments.application.registry import PaymentGatewayRegistry
from apps.payments.application.services.audit_trail import AuditEntry, AuditTrailService
from apps.payments.application.services.status_transitions import (
    PaymentStatusTransitioner,
    StatusChange,
    lock_payment,
)
from apps.payments.application.use_cases.create_card_payment import CardInput, build_card_details
from apps.payments.application.use_cases.create_charge import default_due_date
from apps.payments.domain.errors import PaymentGatewayError, PaymentValidationError
from apps.payments.domain.fees import (
    RevenueSplitResult,
    allocate_net_amount,
    calculate_payment_fee,
    describe_payment_fee,
    round_money,
    to_decimal,
)
from apps.payments.domain.policies import (
    ensure_amounts_consistent,
    require_text,
    validate_amount,
    validate_installments,
)
from apps.payments.domain.ports import PaymentGatewayPort
from apps.payments.domain.types import (
    DEFAULT_FEES,
    CreateCardPaymentRequest,
    CreateCustomerRequest,
    CreatePaymentRequest,
    EventSource,
    FeeSchedule,
    GatewayPayment,
    PaymentMethod,
    PaymentStatus,
    TransactionEventType,
)
from apps.payments.models import Payment

logger = logging.getLogger("condotrack.payments")

FREE_GATEWAY = "free"

_METHODS = {
    "pix": PaymentMethod.PIX,
    "boleto": PaymentMethod.BOLETO,
    "card": PaymentMethod.CREDIT_CARD,
    "credit_card": PaymentMethod.CREDIT_CARD,
}


@dataclass(frozen=True)
class CheckoutCommand:
    student_id: str
    student_name: str
    student_email: str
    student_document: str
    course_id: str
    course_name: str
    amount: Decimal
    payment_method: str
    student_phone: str = ""
    instructor_id: str = ""
    discount_code: str = ""
    card: CardInput | None = None
    installments: int = 1
    enrollment_id: str = ""


@dataclass(frozen=True)
class CheckoutResult:
    payment: Payment
    split: RevenueSplitResult
    gateway_payment: GatewayPayment | None = None
    coupon_code: str = ""


class CheckoutUseCase:
    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def execute(self, cmd: CheckoutCommand) -> CheckoutResult:
        method = _METHODS.get((cmd.payment_method or "").strip().lower())
        if method is None:
            raise PaymentValidationError(
                "invalid payment method. Use: pix, boleto, or card", field="payment_method"
            )
        name = require_text(cmd.student_name, field="student_name", message="Student name is required.")
        email = require_text(cmd.student_email, field="student_email", message="Student email is required.")
        document = require_text(cmd.student_document, field="student_document", message="Student document is required.")
        course_id = require_text(cmd.course_id, field="course_id", message="Course ID is required.")
        amount = round_money(validate_amount(cmd.amount))
        card = None
        if method == PaymentMethod.CREDIT_CARD:
            if cmd.card is None:
                raise PaymentValidationError(
                    "credit card information is required for card payment", field="card_number"
                )
            card = build_card_details(cmd.card)
        installments = validate_installments(cmd.installments)

        quote = None
        discount = Decimal("0.00")
        if (cmd.discount_code or "").strip():
            quote = CouponQuoteService.require(
                code=cmd.discount_code,
                amount=amount,
                course_id=course_id,
                user_id=(cmd.student_id or "").strip(),
            )
            discount = round_money(quote.discount_amount)
        charged = amount - discount
        enrollment_id = (cmd.enrollment_id or "").strip() or str(uuid.uuid4())
        fields = {
            "enrollment_id": enrollment_id,
            "payer_user_id": (cmd.student_id or "").strip(),
            "payer_name": name,
            "payer_email": email,
            "payer_document": document,
            "gross_amount": amount,
            "discount_amount": discount,
            "instructor_id": (cmd.instructor_id or "").strip(),
            "course_id": course_id,
            "coupon": quote.coupon if quote else None,
        }
        coupon_code = quote.code if quote else ""

        if charged <= 0:
            payment = self._record_free(fields)
            return CheckoutResult(payment=payment, split=payment_split(payment), coupon_code=coupon_code)

        gateway = self.registry.get_active()
        fees = gateway.get_fees()
        customer = gateway.find_customer_by_document(document) or gateway.create_customer(
            CreateCustomerRequest(name=name, email=email, document=document, phone=(cmd.student_phone or "").strip())
        )
        request = CreatePaymentRequest(
            customer_gateway_id=customer.gateway_id,
            amount=charged,
            due_date=default_due_date(),
            description=f"Matrícula: {(cmd.course_name or '').strip()}",
            external_reference=enrollment_id,
        )
        if method == PaymentMethod.PIX:
            remote = gateway.create_pix_payment(request)
        elif method == PaymentMethod.BOLETO:
            remote = gateway.create_boleto_payment(request)
        else:
            remote = gateway.create_card_payment(
                CreateCardPaymentRequest(payment=request, card=card, installments=installments)
            )

        fee = min(round_money(calculate_payment_fee(charged, method, fees)), charged)
        fields.update(
            {
                "payment_method": method.value,
                "gateway": gateway.code,
                "gateway_payment_id": remote.gateway_payment_id,
                "gateway_customer_id": customer.gateway_id,
                "gateway_invoice_url": remote.invoice_url,
                "gateway_fee": fee,
                "net_amount": charged - fee,
                "installment_count": remote.installments or installments,
                "due_date": remote.due_date,
                "expires_at": remote.pix_expires_at,
            }
        )
        try:
            payment = self._record(fields, remote)
        except Exception:
            self._compensate(gateway, remote.gateway_payment_id)
            raise

        logger.info(
            "checkout_created",
            extra={
                "payment_id": str(payment.pk),
                "enrollment_id": enrollment_id,
                "gateway": gateway.code,
                "payment_method": method.value,
                "status": payment.status,
            },
        )
        return CheckoutResult(
            payment=payment,
            split=payment_split(payment, fees),
            gateway_payment=remote,
            coupon_code=coupon_code,
        )

    @staticmethod
    @transaction.atomic
    def _record(fields: dict, remote: GatewayPayment) -> Payment:
        _check_amounts(fields)
        payment = Payment.objects.create(status=PaymentStatus.PENDING, **fields)
        AuditTrailService.append(
            payment,
            AuditEntry(
                previous_status=None,
                new_status=PaymentStatus.PENDING,
                event_source=EventSource.API,
                event_type=TransactionEventType.CREATED,
                amount=payment.charged_amount,
                description="Checkout created",
                request_metadata={"gateway_raw_status": remote.gateway_raw_status},
            ),
        )
        if remote.status != PaymentStatus.PENDING:
            result = PaymentStatusTransitioner.apply(
                lock_payment(payment.pk),
                StatusChange(
                    new_status=remote.status,
                    event_source=EventSource.SYSTEM,
                    paid_at=remote.paid_at,
                    description="Status reported by the gateway at charge time",
                ),
            )
            payment = result.payment
        return payment

    @staticmethod
    @transaction.atomic
    def _record_free(fields: dict) -> Payment:
        fields = {**fields, "gateway_fee": Decimal("0.00"), "net_amount": Decimal("0.00")}
        _check_amounts(fields)
        payment = Payment.objects.create(
            status=PaymentStatus.PENDING,
            payment_method=PaymentMethod.FREE.value,
            gateway=FREE_GATEWAY,
            **fields,
        )
        AuditTrailService.append(
            payment,
            AuditEntry(
                previous_status=None,
                new_status=PaymentStatus.PENDING,
                event_source=EventSource.API,
                event_type=TransactionEventType.CREATED,
                amount=Decimal("0.00"),
                description="Free enrollment",
            ),
        )
        result = PaymentStatusTransitioner.apply(
            lock_payment(payment.pk),
            StatusChange(
                new_status=PaymentStatus.CONFIRMED,
                event_source=EventSource.SYSTEM,
                description="Fully discounted order",
            ),
        )
        logger.info("checkout_free", extra={"payment_id": str(payment.pk), "enrollment_id": payment.enrollment_id})
        return result.payment

    @staticmethod
    def _compensate(gateway: PaymentGatewayPort, gateway_payment_id: str) -> None:
        try:
            gateway.cancel_payment(gateway_payment_id)
        except PaymentGatewayError as exc:
            logger.error(
                "checkout_compensation_failed",
                extra={"gateway": gateway.code, "gateway_payment_id": gateway_payment_id, "error": str(exc)},
            )
        else:
            logger.warning(
                "checkout_compensated",
                extra={"gateway": gateway.code, "gateway_payment_id": gateway_payment_id},
            )


def _check_amounts(fields: dict) -> None:
    ensure_amounts_consistent(
        gross_amount=fields["gross_amount"],
        discount_amount=fields["discount_amount"],
        gateway_fee=fields["gateway_fee"],
        net_amount=fields["net_amount"],
        refunded_amount=fields.get("refunded_amount", Decimal("0.00")),
    )


def payment_split(payment: Payment, fees: FeeSchedule = DEFAULT_FEES) -> RevenueSplitResult:
    """Instructor/platform split of a recorded payment, from its persisted fee and net amount."""
    instructor_percent = to_decimal(settings.REVENUE_INSTRUCTOR_PERCENT)
    platform_percent = to_decimal(settings.REVENUE_PLATFORM_PERCENT)
    instructor_amount, platform_amount = allocate_net_amount(payment.net_amount, instructor_percent, platform_percent)
    return RevenueSplitResult(
        gross_amount=payment.charged_amount,
        payment_fee=payment.gateway_fee,
        payment_fee_description=describe_payment_fee(payment.payment_method, fees),
        net_amount=payment.net_amount,
        instructor_amount=instructor_amount,
        platform_amount=platform_amount,
        instructor_percent=instructor_percent,
        platform_percent=platform_percent,
    )
