from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from apps.payments.application.registry import PaymentGatewayRegistry
from apps.payments.application.use_cases.create_charge import build_payment_request
from apps.payments.domain.policies import require_text, validate_installments
from apps.payments.domain.types import CardDetails, CreateCardPaymentRequest, GatewayPayment

logger = logging.getLogger("condotrack.payments")


@dataclass(frozen=True)
class CardInput:
    number: str
    exp_month: str
    exp_year: str
    cvv: str
    holder_name: str
    holder_email: str
    holder_document: str
    holder_postal_code: str
    holder_phone: str = ""

    def __repr__(self) -> str:
        return f"CardInput(last4={(self.number or '')[-4:]})"


@dataclass(frozen=True)
class CreateCardPaymentCommand:
    customer_gateway_id: str
    amount: Decimal
    card: CardInput
    installments: int = 1
    due_date: str | None = None
    description: str = ""
    external_reference: str = ""


def build_card_details(card: CardInput) -> CardDetails:
    number = require_text(card.number, field="card_number", message="Card number is required.")
    return CardDetails(
        number="".join(number.split()),
        exp_month=require_text(card.exp_month, field="card_exp_month", message="Card expiry month is required."),
        exp_year=require_text(card.exp_year, field="card_exp_year", message="Card expiry year is required."),
        cvv=require_text(card.cvv, field="card_cvv", message="Card CVV is required."),
        holder_name=require_text(card.holder_name, field="holder_name", message="Card holder name is required."),
        holder_email=require_text(card.holder_email, field="holder_email", message="Card holder email is required."),
        holder_document=require_text(
            card.holder_document, field="holder_document", message="Card holder document is required."
        ),
        holder_postal_code=require_text(
            card.holder_postal_code, field="holder_postal_code", message="Card holder postal code is required."
        ),
        holder_phone=(card.holder_phone or "").strip(),
    )


class CreateCardPaymentUseCase:
    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def execute(self, cmd: CreateCardPaymentCommand) -> GatewayPayment:
        payment_request = build_payment_request(
            customer_gateway_id=cmd.customer_gateway_id,
            amount=cmd.amount,
            due_date=cmd.due_date,
            description=cmd.description,
            external_reference=cmd.external_reference,
        )
        request = CreateCardPaymentRequest(
            payment=payment_request,
            card=build_card_details(cmd.card),
            installments=validate_installments(cmd.installments),
        )
        gateway = self.registry.get_active()
        payment = gateway.create_card_payment(request)
        logger.info(
            "gateway_charge_created",
            extra={
                "gateway": gateway.code,
                "billing_type": "credit_card",
                "gateway_payment_id": payment.gateway_payment_id,
                "installments": request.installments,
            },
        )
        return payment
