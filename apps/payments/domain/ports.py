from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from .types import (
    CreateCardPaymentRequest,
    CreateCustomerRequest,
    CreatePaymentRequest,
    FeeSchedule,
    GatewayCustomer,
    GatewayPayment,
    WebhookEvent,
)


class PaymentGatewayPort(Protocol):
    """Capability every payment provider adapter implements.

    ``code`` identifies the provider in the registry and in the ledger's
    ``gateway`` column. Lookups return ``None`` when the provider has no such
    record; provider or network failures raise ``PaymentGatewayError``.
    """

    code: str
    name: str

    def create_customer(self, request: CreateCustomerRequest) -> GatewayCustomer:
        ...

    def find_customer_by_document(self, document: str) -> GatewayCustomer | None:
        ...

    def create_pix_payment(self, request: CreatePaymentRequest) -> GatewayPayment:
        ...

    def create_boleto_payment(self, request: CreatePaymentRequest) -> GatewayPayment:
        ...

    def create_card_payment(self, request: CreateCardPaymentRequest) -> GatewayPayment:
        ...

    def get_payment(self, gateway_payment_id: str) -> GatewayPayment | None:
        ...

    def refund_payment(self, gateway_payment_id: str, amount: Decimal | None = None) -> GatewayPayment:
        ...

    def cancel_payment(self, gateway_payment_id: str) -> None:
        ...

    def parse_webhook_event(self, *, headers: dict, body: bytes) -> WebhookEvent:
        ...

    def validate_webhook_signature(self, *, headers: dict, body: bytes) -> bool:
        ...

    def get_fees(self) -> FeeSchedule:
        ...
