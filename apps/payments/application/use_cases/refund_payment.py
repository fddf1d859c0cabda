from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction

from apps.payments.application.registry import PaymentGatewayRegistry
from apps.payments.application.services.status_transitions import (
    PaymentStatusTransitioner,
    StatusChange,
    TransitionOutcome,
    lock_payment,
)
from apps.payments.domain.errors import (
    InvalidTransitionError,
    PaymentNotFoundError,
    PaymentValidationError,
)
from apps.payments.domain.policies import validate_amount
from apps.payments.domain.state_machine import PaymentStateMachine
from apps.payments.domain.types import EventSource, PaymentStatus
from apps.payments.models import Payment

logger = logging.getLogger("condotrack.payments")


@dataclass(frozen=True)
class RefundPaymentCommand:
    payment_id: str
    amount: Decimal | None = None
    reason: str = ""
    requested_by: str = ""


class RefundPaymentUseCase:
    """Full or partial refund through the payment's own gateway."""

    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def execute(self, cmd: RefundPaymentCommand) -> Payment:
        payment = Payment.objects.filter(pk=cmd.payment_id).first()
        if payment is None:
            raise PaymentNotFoundError("Payment not found.")
        if not payment.gateway_payment_id:
            raise PaymentValidationError("Payment has no gateway charge to refund.", field="payment_id")
        if not (
            PaymentStateMachine.can_transition(payment.status, PaymentStatus.REFUNDED)
            or PaymentStateMachine.can_transition(payment.status, PaymentStatus.PARTIALLY_REFUNDED)
        ):
            raise InvalidTransitionError(
                f"Payment in status {payment.status} cannot be refunded.",
                current_status=payment.status,
                requested_status=PaymentStatus.REFUNDED,
            )
        amount = None
        if cmd.amount is not None:
            amount = validate_amount(cmd.amount)
            if amount > payment.charged_amount - payment.refunded_amount:
                raise PaymentValidationError("Refund exceeds the refundable balance.", field="amount")

        gateway = self.registry.get(payment.gateway)
        remote = gateway.refund_payment(payment.gateway_payment_id, amount)

        with transaction.atomic():
            locked = lock_payment(payment.pk)
            result = PaymentStatusTransitioner.apply(
                locked,
                StatusChange(
                    new_status=remote.status,
                    event_source=EventSource.API,
                    refunded_amount=remote.refunded_amount,
                    description=cmd.reason or "Refund requested through the API",
                    metadata={"requested_by": cmd.requested_by, "requested_amount": str(amount) if amount else "full"},
                ),
            )
        if result.outcome == TransitionOutcome.REJECTED:
            raise InvalidTransitionError(
                f"Gateway reported {remote.status}, not reachable from {result.previous_status}.",
                current_status=result.previous_status,
                requested_status=remote.status,
            )
        logger.info(
            "payment_refunded",
            extra={"payment_id": str(payment.pk), "status": result.payment.status, "amount": str(amount or "full")},
        )
        return result.payment
