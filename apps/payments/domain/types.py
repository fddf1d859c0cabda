"""
Canonical payment vocabulary.

PT: Vocabulário canônico de pagamentos, independente de gateway.
EN: Provider-independent payment vocabulary shared by every layer.

The string values are persisted and exposed through the API, so they must
never change.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum


class PaymentStatus(StrEnum):
    PENDING = "pending"
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"
    RECEIVED = "received"
    OVERDUE = "overdue"
    REFUND_REQUESTED = "refund_requested"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    CHARGEBACK = "chargeback"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BillingType(StrEnum):
    PIX = "pix"
    BOLETO = "boleto"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"


class PaymentMethod(StrEnum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BOLETO = "boleto"
    PIX = "pix"
    BANK_TRANSFER = "bank_transfer"
    FREE = "free"


class WebhookEventType(StrEnum):
    PAYMENT_CREATED = "payment_created"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_OVERDUE = "payment_overdue"
    PAYMENT_REFUNDED = "payment_refunded"
    PAYMENT_DELETED = "payment_deleted"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_CHARGEBACK = "payment_chargeback"
    UNKNOWN = "unknown"


class EventSource(StrEnum):
    WEBHOOK = "webhook"
    MANUAL = "manual"
    SYSTEM = "system"
    SCHEDULER = "scheduler"
    API = "api"


class TransactionEventType(StrEnum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    WEBHOOK_RECEIVED = "webhook_received"
    REFUND_REQUESTED = "refund_requested"
    ERROR = "error"


SETTLED_STATUSES = frozenset({PaymentStatus.CONFIRMED, PaymentStatus.RECEIVED})
REFUND_STATUSES = frozenset({PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED})


def status_choices() -> list[tuple[str, str]]:
    return [(s.value, s.value.replace("_", " ").title()) for s in PaymentStatus]


@dataclass(frozen=True)
class CreateCustomerRequest:
    name: str
    email: str
    document: str
    phone: str = ""


@dataclass(frozen=True)
class GatewayCustomer:
    gateway_id: str
    name: str
    email: str
    document: str


@dataclass(frozen=True)
class CreatePaymentRequest:
    customer_gateway_id: str
    amount: Decimal
    due_date: date
    description: str = ""
    external_reference: str = ""


@dataclass(frozen=True)
class CardDetails:
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
        return f"CardDetails(last4={self.number[-4:]}, holder_name={self.holder_name!r})"


@dataclass(frozen=True)
class CreateCardPaymentRequest:
    payment: CreatePaymentRequest
    card: CardDetails
    installments: int = 1


@dataclass(frozen=True)
class GatewayPayment:
    gateway_payment_id: str
    status: str
    gateway_raw_status: str
    amount: Decimal
    billing_type: str
    net_amount: Decimal | None = None
    refunded_amount: Decimal | None = None
    due_date: date | None = None
    paid_at: datetime | None = None
    confirmed_at: datetime | None = None
    invoice_url: str = ""
    pix_qr_code_base64: str = ""
    pix_copy_paste: str = ""
    pix_expires_at: datetime | None = None
    boleto_url: str = ""
    boleto_barcode: str = ""
    transaction_receipt_url: str = ""
    installments: int = 1


@dataclass(frozen=True)
class WebhookEvent:
    """A provider notification translated into canonical terms.

    ``status`` is ``None`` when the provider status has no canonical mapping;
    ``raw_payload`` keeps the exact request body so the event can be
    re-normalized later.
    """

    event_type: str
    gateway_event: str
    gateway_name: str
    payment_id: str
    raw_payload: bytes
    event_id: str | None = None
    customer_id: str = ""
    amount: Decimal | None = None
    net_amount: Decimal | None = None
    refunded_amount: Decimal | None = None
    status: str | None = None
    gateway_raw_status: str = ""
    billing_type: str = ""
    external_reference: str = ""
    paid_at: datetime | None = None


@dataclass(frozen=True)
class FeeSchedule:
    """Gateway fees; percentages are fractions (0.0099 means 0.99%)."""

    pix_percent: Decimal = Decimal("0.0099")
    boleto_fixed: Decimal = Decimal("2.99")
    card_percent: Decimal = Decimal("0.0299")
    card_fixed: Decimal = Decimal("0.49")

    @classmethod
    def from_options(cls, options: dict | None) -> "FeeSchedule":
        options = options or {}
        defaults = cls()
        return cls(
            pix_percent=Decimal(str(options.get("pix_percent", defaults.pix_percent))),
            boleto_fixed=Decimal(str(options.get("boleto_fixed", defaults.boleto_fixed))),
            card_percent=Decimal(str(options.get("card_percent", defaults.card_percent))),
            card_fixed=Decimal(str(options.get("card_fixed", defaults.card_fixed))),
        )


DEFAULT_FEES = FeeSchedule()
