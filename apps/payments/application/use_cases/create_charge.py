from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from django.conf import settings
from django.utils import timezone

from apps.payments.application.registry import PaymentGatewayRegistry
from apps.payments.domain.policies import parse_due_date, require_text, validate_amount
from apps.payments.domain.types import CreatePaymentRequest, GatewayPayment

logger = logging.getLogger("condotrack.payments")


def default_due_date() -> date:
    return timezone.localdate() + timedelta(days=int(getattr(settings, "PAYMENT_DEFAULT_DUE_DAYS", 3)))


def build_payment_request(
    *,
    customer_gateway_id: str,
    amount,
    due_date: str | None,
    description: str,
    external_reference: str,
) -> CreatePaymentRequest:
    customer_id = require_text(customer_gateway_id, field="customer_id", message="Customer ID is required.")
    value = validate_amount(amount, field="value")
    return CreatePaymentRequest(
        customer_gateway_id=customer_id,
        amount=value,
        due_date=parse_due_date(due_date) or default_due_date(),
        description=(description or "").strip(),
        external_reference=(external_reference or "").strip(),
    )


@dataclass(frozen=True)
class CreateChargeCommand:
    customer_gateway_id: str
    amount: Decimal
    due_date: str | None = None
    description: str = ""
    external_reference: str = ""


class CreatePixPaymentUseCase:
    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def execute(self, cmd: CreateChargeCommand) -> GatewayPayment:
        request = build_payment_request(
            customer_gateway_id=cmd.customer_gateway_id,
            amount=cmd.amount,
            due_date=cmd.due_date,
            description=cmd.description,
            external_reference=cmd.external_reference,
        )
        gateway = self.registry.get_active()
        payment = gateway.create_pix_payment(request)
        logger.info(
            "gateway_charge_created",
            extra={"gateway": gateway.code, "billing_type": "pix", "gateway_payment_id": payment.gateway_payment_id},
        )
        return payment


class CreateBoletoPaymentUseCase:
    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def execute(self, cmd: CreateChargeCommand) -> GatewayPayment:
        request = build_payment_request(
            customer_gateway_id=cmd.customer_gateway_id,
            amount=cmd.amount,
            due_date=cmd.due_date,
            description=cmd.description,
            external_reference=cmd.external_reference,
        )
        gateway = self.registry.get_active()
        payment = gateway.create_boleto_payment(request)
        logger.info(
            "gateway_charge_created",
            extra={"gateway": gateway.code, "billing_type": "boleto", "gateway_payment_id": payment.gateway_payment_id},
        )
        return payment
