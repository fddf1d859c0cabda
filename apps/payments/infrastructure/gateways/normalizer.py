"""
Webhook normalization.

PT: Converte notificações de cada gateway para eventos canônicos.
EN: Turns raw provider notifications into canonical ``WebhookEvent`` values.

Each provider subclasses ``WebhookNormalizer`` with its own mapping tables and
field extraction; nothing outside the subclass branches on the provider.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from datetime import date, datetime, time
from datetime import timezone as dt_timezone
from decimal import Decimal, InvalidOperation

from apps.payments.domain.errors import WebhookPayloadError
from apps.payments.domain.types import BillingType, PaymentStatus, WebhookEvent, WebhookEventType

_IMPLIED_STATUS: dict[str, PaymentStatus] = {
    WebhookEventType.PAYMENT_CONFIRMED: PaymentStatus.CONFIRMED,
    WebhookEventType.PAYMENT_RECEIVED: PaymentStatus.RECEIVED,
    WebhookEventType.PAYMENT_OVERDUE: PaymentStatus.OVERDUE,
    WebhookEventType.PAYMENT_REFUNDED: PaymentStatus.REFUNDED,
    WebhookEventType.PAYMENT_DELETED: PaymentStatus.CANCELLED,
    WebhookEventType.PAYMENT_FAILED: PaymentStatus.FAILED,
    WebhookEventType.PAYMENT_CHARGEBACK: PaymentStatus.CHARGEBACK,
}


def normalize_headers(headers) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in (headers or {}).items()}


def parse_amount(value, *, field: str) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise WebhookPayloadError(f"Invalid amount in field {field}.") from None
    if not amount.is_finite():
        raise WebhookPayloadError(f"Invalid amount in field {field}.")
    return amount


def parse_timestamp(value, *, field: str) -> datetime | None:
    if not value:
        return None
    raw = str(value).strip()
    try:
        if len(raw) == 10:
            return datetime.combine(date.fromisoformat(raw), time.min, tzinfo=dt_timezone.utc)
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise WebhookPayloadError(f"Invalid timestamp in field {field}.") from None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt_timezone.utc)


class WebhookNormalizer:
    gateway_name: str = ""
    signature_header: str = ""
    signature_prefix: str = "sha256="
    event_map: dict[str, WebhookEventType] = {}
    status_map: dict[str, PaymentStatus] = {}
    billing_map: dict[str, BillingType] = {}

    def __init__(self, secret: str = ""):
        self.secret = secret or ""

    def sign(self, body: bytes) -> str:
        digest = hmac.new(self.secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return f"{self.signature_prefix}{digest}"

    def validate_signature(self, *, headers, body: bytes) -> bool:
        if not self.secret:
            return False
        provided = normalize_headers(headers).get(self.signature_header.lower(), "")
        if not provided:
            return False
        return hmac.compare_digest(provided.strip(), self.sign(body))

    def decode(self, body: bytes) -> dict:
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise WebhookPayloadError("Webhook body is not valid JSON.") from None
        if not isinstance(payload, dict):
            raise WebhookPayloadError("Webhook body must be a JSON object.")
        return payload

    def extract(self, payload: dict) -> dict:
        """Pull provider fields out of ``payload``.

        Returns a dict with ``event``, ``event_id``, ``payment_id``, ``status``,
        ``billing_type``, ``customer_id``, ``amount``, ``net_amount``,
        ``refunded_amount``, ``external_reference`` and ``paid_at`` (raw values).
        """
        raise NotImplementedError

    def parse(self, *, headers, body: bytes) -> WebhookEvent:
        fields = self.extract(self.decode(body))
        gateway_event = str(fields.get("event") or "")
        payment_id = str(fields.get("payment_id") or "")
        if not gateway_event or not payment_id:
            raise WebhookPayloadError("Webhook payload is missing the event or payment id.")

        event_type = self.event_map.get(gateway_event, WebhookEventType.UNKNOWN)
        raw_status = str(fields.get("status") or "")
        if raw_status:
            status = self.status_map.get(raw_status)
        else:
            status = _IMPLIED_STATUS.get(event_type)
        raw_billing = str(fields.get("billing_type") or "")

        return WebhookEvent(
            event_type=event_type,
            gateway_event=gateway_event,
            gateway_name=self.gateway_name,
            payment_id=payment_id,
            raw_payload=body,
            event_id=str(fields["event_id"]) if fields.get("event_id") else None,
            customer_id=str(fields.get("customer_id") or ""),
            amount=parse_amount(fields.get("amount"), field="amount"),
            net_amount=parse_amount(fields.get("net_amount"), field="net_amount"),
            refunded_amount=parse_amount(fields.get("refunded_amount"), field="refunded_amount"),
            status=status.value if status else None,
            gateway_raw_status=raw_status,
            billing_type=self.billing_map[raw_billing].value if raw_billing in self.billing_map else "",
            external_reference=str(fields.get("external_reference") or ""),
            paid_at=parse_timestamp(fields.get("paid_at"), field="paid_at"),
        )


class SandboxWebhookNormalizer(WebhookNormalizer):
    gateway_name = "sandbox"
    signature_header = "X-Sandbox-Signature"
    event_map = {
        "PAYMENT_CREATED": WebhookEventType.PAYMENT_CREATED,
        "PAYMENT_CONFIRMED": WebhookEventType.PAYMENT_CONFIRMED,
        "PAYMENT_RECEIVED": WebhookEventType.PAYMENT_RECEIVED,
        "PAYMENT_OVERDUE": WebhookEventType.PAYMENT_OVERDUE,
        "PAYMENT_REFUNDED": WebhookEventType.PAYMENT_REFUNDED,
        "PAYMENT_PARTIALLY_REFUNDED": WebhookEventType.PAYMENT_REFUNDED,
        "PAYMENT_DELETED": WebhookEventType.PAYMENT_DELETED,
        "PAYMENT_REPROVED_BY_RISK_ANALYSIS": WebhookEventType.PAYMENT_FAILED,
        "PAYMENT_CREDIT_CARD_CAPTURE_REFUSED": WebhookEventType.PAYMENT_FAILED,
        "PAYMENT_CHARGEBACK_REQUESTED": WebhookEventType.PAYMENT_CHARGEBACK,
    }
    status_map = {
        "PENDING": PaymentStatus.PENDING,
        "AWAITING_RISK_ANALYSIS": PaymentStatus.AWAITING_PAYMENT,
        "CONFIRMED": PaymentStatus.CONFIRMED,
        "RECEIVED": PaymentStatus.RECEIVED,
        "RECEIVED_IN_CASH": PaymentStatus.RECEIVED,
        "OVERDUE": PaymentStatus.OVERDUE,
        "REFUND_REQUESTED": PaymentStatus.REFUND_REQUESTED,
        "REFUNDED": PaymentStatus.REFUNDED,
        "PARTIALLY_REFUNDED": PaymentStatus.PARTIALLY_REFUNDED,
        "CHARGEBACK_REQUESTED": PaymentStatus.CHARGEBACK,
        "REFUSED": PaymentStatus.FAILED,
        "DELETED": PaymentStatus.CANCELLED,
    }
    billing_map = {
        "PIX": BillingType.PIX,
        "BOLETO": BillingType.BOLETO,
        "CREDIT_CARD": BillingType.CREDIT_CARD,
        "DEBIT_CARD": BillingType.DEBIT_CARD,
    }

    def extract(self, payload: dict) -> dict:
        payment = payload.get("payment")
        if not isinstance(payment, dict):
            raise WebhookPayloadError("Webhook payload is missing the payment object.")
        return {
            "event": payload.get("event"),
            "event_id": payload.get("id"),
            "payment_id": payment.get("id"),
            "status": payment.get("status"),
            "billing_type": payment.get("billingType"),
            "customer_id": payment.get("customer"),
            "amount": payment.get("value"),
            "net_amount": payment.get("netValue"),
            "refunded_amount": payment.get("refundedValue"),
            "external_reference": payment.get("externalReference"),
            "paid_at": payment.get("paymentDate") or payment.get("confirmedDate"),
        }
