from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from apps.payments.application.registry import PaymentGatewayRegistry
from apps.payments.domain.errors import (
    GatewayNotRegisteredError,
    PaymentGatewayError,
    PaymentNotFoundError,
    PaymentValidationError,
)
from apps.payments.domain.types import GatewayPayment
from apps.payments.models import Payment

logger = logging.getLogger("condotrack.payments")


@dataclass(frozen=True)
class GetPaymentStatusCommand:
    payment_id: str


@dataclass(frozen=True)
class PaymentStatusResult:
    source: str
    status: str
    payment: Payment | None = None
    gateway_status: str | None = None
    gateway_payment: GatewayPayment | None = None


def _as_uuid(raw: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


class GetPaymentStatusUseCase:
    """Local ledger first, with a best-effort live status from the gateway.

    When no local row matches, ``payment_id`` is treated as a gateway id on
    the active gateway.
    """

    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def execute(self, cmd: GetPaymentStatusCommand) -> PaymentStatusResult:
        raw_id = (cmd.payment_id or "").strip()
        if not raw_id:
            raise PaymentValidationError("Payment ID is required.", field="payment_id")

        local_id = _as_uuid(raw_id)
        payment = Payment.objects.filter(pk=local_id).first() if local_id else None
        if payment is not None:
            return PaymentStatusResult(
                source="local",
                status=payment.status,
                payment=payment,
                gateway_status=self._live_status(payment),
            )

        remote = self.registry.get_active().get_payment(raw_id)
        if remote is None:
            raise PaymentNotFoundError("Payment not found.")
        return PaymentStatusResult(
            source="gateway",
            status=remote.status,
            gateway_status=remote.status,
            gateway_payment=remote,
        )

    def _live_status(self, payment: Payment) -> str | None:
        remote = self._live_payment(payment)
        return remote.status if remote else None

    def _live_payment(self, payment: Payment) -> GatewayPayment | None:
        if not payment.gateway_payment_id:
            return None
        try:
            return self.registry.get(payment.gateway).get_payment(payment.gateway_payment_id)
        except (PaymentGatewayError, GatewayNotRegisteredError) as exc:
            logger.warning(
                "gateway_status_lookup_failed",
                extra={"payment_id": str(payment.pk), "gateway": payment.gateway, "error": str(exc)},
            )
            return None
