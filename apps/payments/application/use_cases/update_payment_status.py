from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import transaction

from apps.payments.application.services.status_transitions import (
    PaymentStatusTransitioner,
    StatusChange,
    TransitionOutcome,
    TransitionResult,
    lock_payment,
)
from apps.payments.domain.errors import InvalidTransitionError, PaymentNotFoundError, PaymentValidationError
from apps.payments.domain.state_machine import PaymentStateMachine
from apps.payments.domain.types import EventSource

logger = logging.getLogger("condotrack.payments")


@dataclass(frozen=True)
class UpdatePaymentStatusCommand:
    payment_id: str
    new_status: str
    reason: str = ""
    requested_by: str = ""
    event_source: str = EventSource.MANUAL


class UpdatePaymentStatusUseCase:
    """Operator-driven status change.

    A disallowed target still leaves an ``error`` entry in the audit trail;
    the caller then gets ``InvalidTransitionError``.
    """

    @staticmethod
    def execute(cmd: UpdatePaymentStatusCommand) -> TransitionResult:
        new_status = (cmd.new_status or "").strip().lower()
        if not PaymentStateMachine.is_known(new_status):
            raise PaymentValidationError(f"Unknown payment status: {cmd.new_status}", field="status")

        with transaction.atomic():
            payment = lock_payment(cmd.payment_id)
            if payment is None:
                raise PaymentNotFoundError("Payment not found.")
            result = PaymentStatusTransitioner.apply(
                payment,
                StatusChange(
                    new_status=new_status,
                    event_source=cmd.event_source,
                    description=cmd.reason,
                    metadata={"requested_by": cmd.requested_by},
                ),
            )

        if result.outcome == TransitionOutcome.REJECTED:
            raise InvalidTransitionError(
                f"Transition {result.previous_status} -> {new_status} is not allowed.",
                current_status=result.previous_status,
                requested_status=new_status,
            )
        return result
