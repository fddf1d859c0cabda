from __future__ import annotations

import base64
import json
import threading
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

from django.utils import timezone

from apps.payments.domain.errors import PaymentGatewayError
from apps.payments.domain.types import (
    BillingType,
    CreateCardPaymentRequest,
    CreateCustomerRequest,
    CreatePaymentRequest,
    FeeSchedule,
    GatewayCustomer,
    GatewayPayment,
    PaymentStatus,
    WebhookEvent,
)
from apps.payments.domain.fees import calculate_payment_fee, round_money
from apps.payments.infrastructure.gateways.normalizer import SandboxWebhookNormalizer

DECLINED_CARD_NUMBER = "4000000000000002"

_RAW_STATUS = {
    PaymentStatus.PENDING: "PENDING",
    PaymentStatus.CONFIRMED: "CONFIRMED",
    PaymentStatus.RECEIVED: "RECEIVED",
    PaymentStatus.REFUNDED: "REFUNDED",
    PaymentStatus.PARTIALLY_REFUNDED: "PARTIALLY_REFUNDED",
    PaymentStatus.CANCELLED: "DELETED",
}
_RAW_BILLING = {
    BillingType.PIX: "PIX",
    BillingType.BOLETO: "BOLETO",
    BillingType.CREDIT_CARD: "CREDIT_CARD",
}


class SandboxGateway:
    """In-memory provider for local development and tests.

    Cards are approved synchronously except ``DECLINED_CARD_NUMBER``. Card
    numbers are never stored; only the last four digits are kept.
    """

    code = "sandbox"
    name = "Sandbox Gateway"

    def __init__(self, *, webhook_secret: str = "", fees: dict | None = None):
        self._fees = FeeSchedule.from_options(fees)
        self._normalizer = SandboxWebhookNormalizer(webhook_secret)
        self._lock = threading.Lock()
        self._customers: dict[str, GatewayCustomer] = {}
        self._payments: dict[str, dict] = {}

    def create_customer(self, request: CreateCustomerRequest) -> GatewayCustomer:
        existing = self.find_customer_by_document(request.document)
        if existing is not None:
            return existing
        customer = GatewayCustomer(
            gateway_id=f"cus_{uuid4().hex[:12]}",
            name=request.name,
            email=request.email,
            document=request.document,
        )
        with self._lock:
            self._customers[customer.gateway_id] = customer
        return customer

    def find_customer_by_document(self, document: str) -> GatewayCustomer | None:
        with self._lock:
            for customer in self._customers.values():
                if customer.document == document:
                    return customer
        return None

    def _require_customer(self, customer_id: str) -> None:
        with self._lock:
            known = customer_id in self._customers
        if not known:
            raise PaymentGatewayError(f"Customer {customer_id} not found.", gateway=self.code, retryable=False)

    def _store(self, record: dict) -> GatewayPayment:
        with self._lock:
            self._payments[record["id"]] = record
        return self._to_payment(record)

    def _new_record(self, request: CreatePaymentRequest, billing_type: str, status: str) -> dict:
        return {
            "id": f"pay_{uuid4().hex[:16]}",
            "customer": request.customer_gateway_id,
            "amount": request.amount,
            "billing_type": billing_type,
            "status": status,
            "due_date": request.due_date,
            "external_reference": request.external_reference,
            "refunded": Decimal("0"),
            "paid_at": None,
            "installments": 1,
        }

    def create_pix_payment(self, request: CreatePaymentRequest) -> GatewayPayment:
        self._require_customer(request.customer_gateway_id)
        record = self._new_record(request, BillingType.PIX, PaymentStatus.PENDING)
        copy_paste = f"00020126580014br.gov.bcb.pix0136{record['id']}5204000053039865406{request.amount:.2f}"
        record.update(
            {
                "pix_copy_paste": copy_paste,
                "pix_qr_code_base64": base64.b64encode(copy_paste.encode("utf-8")).decode("ascii"),
                "pix_expires_at": timezone.now() + timedelta(days=1),
            }
        )
        return self._store(record)

    def create_boleto_payment(self, request: CreatePaymentRequest) -> GatewayPayment:
        self._require_customer(request.customer_gateway_id)
        record = self._new_record(request, BillingType.BOLETO, PaymentStatus.PENDING)
        digits = f"{uuid4().int:044d}"[:44]
        record.update(
            {
                "boleto_url": f"https://sandbox.invalid/boleto/{record['id']}",
                "boleto_barcode": digits,
            }
        )
        return self._store(record)

    def create_card_payment(self, request: CreateCardPaymentRequest) -> GatewayPayment:
        self._require_customer(request.payment.customer_gateway_id)
        if request.card.number == DECLINED_CARD_NUMBER:
            raise PaymentGatewayError("Card declined by issuer.", gateway=self.code, retryable=False)
        record = self._new_record(request.payment, BillingType.CREDIT_CARD, PaymentStatus.CONFIRMED)
        record.update(
            {
                "paid_at": timezone.now(),
                "installments": request.installments,
                "card_last4": request.card.number[-4:],
                "receipt_url": f"https://sandbox.invalid/receipt/{record['id']}",
            }
        )
        return self._store(record)

    def get_payment(self, gateway_payment_id: str) -> GatewayPayment | None:
        with self._lock:
            record = self._payments.get(gateway_payment_id)
        return self._to_payment(record) if record else None

    def refund_payment(self, gateway_payment_id: str, amount: Decimal | None = None) -> GatewayPayment:
        with self._lock:
            record = self._payments.get(gateway_payment_id)
            if record is None:
                raise PaymentGatewayError("Payment not found.", gateway=self.code, retryable=False)
            if record["status"] not in (
                PaymentStatus.CONFIRMED,
                PaymentStatus.RECEIVED,
                PaymentStatus.PARTIALLY_REFUNDED,
            ):
                raise PaymentGatewayError(
                    f"Payment in status {record['status']} cannot be refunded.", gateway=self.code, retryable=False
                )
            remaining = record["amount"] - record["refunded"]
            value = remaining if amount is None else amount
            if value <= 0 or value > remaining:
                raise PaymentGatewayError("Refund amount exceeds the refundable balance.", gateway=self.code, retryable=False)
            record["refunded"] += value
            record["status"] = (
                PaymentStatus.REFUNDED if record["refunded"] >= record["amount"] else PaymentStatus.PARTIALLY_REFUNDED
            )
        return self._to_payment(record)

    def cancel_payment(self, gateway_payment_id: str) -> None:
        with self._lock:
            record = self._payments.get(gateway_payment_id)
            if record is None:
                raise PaymentGatewayError("Payment not found.", gateway=self.code, retryable=False)
            if record["status"] != PaymentStatus.PENDING:
                raise PaymentGatewayError(
                    f"Payment in status {record['status']} cannot be cancelled.", gateway=self.code, retryable=False
                )
            record["status"] = PaymentStatus.CANCELLED

    def settle(self, gateway_payment_id: str, *, status: str = PaymentStatus.RECEIVED) -> None:
        """Marks a pending charge as paid, as a payer would."""
        with self._lock:
            record = self._payments[gateway_payment_id]
            record["status"] = status
            record["paid_at"] = timezone.now()

    def parse_webhook_event(self, *, headers: dict, body: bytes) -> WebhookEvent:
        return self._normalizer.parse(headers=headers, body=body)

    def validate_webhook_signature(self, *, headers: dict, body: bytes) -> bool:
        return self._normalizer.validate_signature(headers=headers, body=body)

    def get_fees(self) -> FeeSchedule:
        return self._fees

    def build_webhook(
        self,
        *,
        event: str,
        gateway_payment_id: str,
        status: str | None = None,
        event_id: str | None = None,
        paid_at: datetime | None = None,
        net_value: Decimal | None = None,
    ) -> tuple[dict, bytes]:
        """Signed notification body for ``gateway_payment_id``, as the provider would send it."""
        with self._lock:
            record = dict(self._payments.get(gateway_payment_id) or {})
        amount = record.get("amount")
        billing = _RAW_BILLING.get(record.get("billing_type"), "")
        if net_value is None and amount is not None:
            net_value = round_money(amount - calculate_payment_fee(amount, record.get("billing_type"), self._fees))
        payment = {
            "id": gateway_payment_id,
            "customer": record.get("customer", ""),
            "value": f"{amount:.2f}" if amount is not None else None,
            "netValue": f"{net_value:.2f}" if net_value is not None else None,
            "billingType": billing,
            "externalReference": record.get("external_reference", ""),
            "paymentDate": paid_at.isoformat() if paid_at else None,
        }
        if status is not None:
            payment["status"] = status
        body = json.dumps({"id": event_id or f"evt_{uuid4().hex[:16]}", "event": event, "payment": payment}).encode(
            "utf-8"
        )
        headers = {self._normalizer.signature_header: self._normalizer.sign(body)}
        return headers, body

    def _to_payment(self, record: dict) -> GatewayPayment:
        status = PaymentStatus(record["status"])
        amount = record["amount"]
        return GatewayPayment(
            gateway_payment_id=record["id"],
            status=status.value,
            gateway_raw_status=_RAW_STATUS.get(status, status.value.upper()),
            amount=amount,
            billing_type=str(record["billing_type"]),
            net_amount=round_money(amount - calculate_payment_fee(amount, record["billing_type"], self._fees)),
            refunded_amount=record["refunded"],
            due_date=record.get("due_date"),
            paid_at=record.get("paid_at"),
            confirmed_at=record.get("paid_at"),
            invoice_url=f"https://sandbox.invalid/invoice/{record['id']}",
            pix_qr_code_base64=record.get("pix_qr_code_base64", ""),
            pix_copy_paste=record.get("pix_copy_paste", ""),
            pix_expires_at=record.get("pix_expires_at"),
            boleto_url=record.get("boleto_url", ""),
            boleto_barcode=record.get("boleto_barcode", ""),
            transaction_receipt_url=record.get("receipt_url", ""),
            installments=record.get("installments", 1),
        )
