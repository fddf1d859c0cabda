from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import transaction

from apps.payments.application.registry import PaymentGatewayRegistry
from apps.payments.application.services.status_transitions import (
    PaymentStatusTransitioner,
    StatusChange,
    TransitionOutcome,
)
from apps.payments.domain.errors import WebhookSignatureError
from apps.payments.domain.types import EventSource, WebhookEvent, WebhookEventType
from apps.payments.models import Payment

logger = logging.getLogger("condotrack.payments")

IGNORED = "ignored"


@dataclass(frozen=True)
class HandleWebhookEventCommand:
    provider_code: str
    headers: dict
    body: bytes


@dataclass(frozen=True)
class HandleWebhookEventResult:
    outcome: str
    event: WebhookEvent | None = None
    payment_id: str | None = None
    status: str | None = None
    reason: str = ""


class HandleWebhookEventUseCase:
    """Verify, normalize and apply one provider notification.

    Signature failures raise before anything is read or written. Events that
    cannot be tied to a local payment or a canonical status are acknowledged
    and ignored so the provider stops retrying them.
    """

    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def execute(self, cmd: HandleWebhookEventCommand) -> HandleWebhookEventResult:
        gateway = self.registry.get(cmd.provider_code)
        if not gateway.validate_webhook_signature(headers=cmd.headers, body=cmd.body):
            logger.warning("webhook_signature_invalid", extra={"gateway": gateway.code})
            raise WebhookSignatureError("Invalid signature.")

        event = gateway.parse_webhook_event(headers=cmd.headers, body=cmd.body)
        if event.event_type == WebhookEventType.UNKNOWN or event.status is None:
            logger.info(
                "webhook_event_ignored",
                extra={
                    "gateway": gateway.code,
                    "gateway_event": event.gateway_event,
                    "gateway_raw_status": event.gateway_raw_status,
                },
            )
            return HandleWebhookEventResult(outcome=IGNORED, event=event, reason="unmapped_event")

        return self._apply(gateway.code, event)

    @transaction.atomic
    def _apply(self, gateway_code: str, event: WebhookEvent) -> HandleWebhookEventResult:
        payment = (
            Payment.objects.select_for_update()
            .filter(gateway=gateway_code, gateway_payment_id=event.payment_id)
            .first()
        )
        if payment is None:
            logger.info(
                "webhook_payment_not_found",
                extra={"gateway": gateway_code, "gateway_payment_id": event.payment_id},
            )
            return HandleWebhookEventResult(outcome=IGNORED, event=event, reason="payment_not_found")

        result = PaymentStatusTransitioner.apply(
            payment,
            StatusChange(
                new_status=event.status,
                event_source=EventSource.WEBHOOK,
                event_id=event.event_id,
                gateway_event=event.gateway_event,
                paid_at=event.paid_at,
                net_amount=event.net_amount,
                refunded_amount=event.refunded_amount,
                raw_payload=event.raw_payload,
                metadata={
                    "event_type": event.event_type,
                    "gateway_raw_status": event.gateway_raw_status,
                    "billing_type": event.billing_type,
                },
            ),
        )
        if result.outcome == TransitionOutcome.REJECTED:
            reason = f"transition {result.previous_status} -> {event.status} not allowed"
        else:
            reason = ""
        return HandleWebhookEventResult(
            outcome=result.outcome.value,
            event=event,
            payment_id=str(payment.pk),
            status=result.payment.status,
            reason=reason,
        )
