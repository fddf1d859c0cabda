from __future__ import annotations

from dataclasses import dataclass

from django.db import transaction

from apps.payments.application.registry import PaymentGatewayRegistry
from apps.payments.application.services.status_transitions import (
    PaymentStatusTransitioner,
    StatusChange,
    TransitionOutcome,
    lock_payment,
)
from apps.payments.domain.errors import InvalidTransitionError, PaymentNotFoundError
from apps.payments.domain.state_machine import PaymentStateMachine
from apps.payments.domain.types import EventSource, PaymentStatus
from apps.payments.models import Payment


@dataclass(frozen=True)
class CancelPaymentCommand:
    payment_id: str
    reason: str = ""
    requested_by: str = ""


class CancelPaymentUseCase:
    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def execute(self, cmd: CancelPaymentCommand) -> Payment:
        payment = Payment.objects.filter(pk=cmd.payment_id).first()
        if payment is None:
            raise PaymentNotFoundError("Payment not found.")
        if not PaymentStateMachine.can_transition(payment.status, PaymentStatus.CANCELLED):
            raise InvalidTransitionError(
                f"Payment in status {payment.status} cannot be cancelled.",
                current_status=payment.status,
                requested_status=PaymentStatus.CANCELLED,
            )
        if payment.gateway_payment_id:
            self.registry.get(payment.gateway).cancel_payment(payment.gateway_payment_id)

        with transaction.atomic():
            result = PaymentStatusTransitioner.apply(
                lock_payment(payment.pk),
                StatusChange(
                    new_status=PaymentStatus.CANCELLED,
                    event_source=EventSource.API,
                    description=cmd.reason or "Cancelled through the API",
                    metadata={"requested_by": cmd.requested_by},
                ),
            )
        if result.outcome == TransitionOutcome.REJECTED:
            raise InvalidTransitionError(
                f"Payment moved to {result.previous_status} before it could be cancelled.",
                current_status=result.previous_status,
                requested_status=PaymentStatus.CANCELLED,
            )
        return result.payment
