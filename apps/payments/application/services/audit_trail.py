"""
Transaction audit trail.

Every status change (and every rejected attempt) is appended here; rows are
never edited. Replaying ``previous_status -> new_status`` over a payment's
history rebuilds its current status.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from apps.payments.domain.errors import PaymentDomainError
from apps.payments.models import Payment, PaymentTransaction


@dataclass(frozen=True)
class AuditEntry:
    previous_status: str | None
    new_status: str
    event_source: str
    event_type: str
    gateway_event_id: str = ""
    idempotency_key: str = ""
    amount: Decimal | None = None
    description: str = ""
    raw_payload: bytes | None = None
    request_metadata: dict = field(default_factory=dict)


class AuditTrailService:
    @staticmethod
    def append(payment: Payment, entry: AuditEntry) -> PaymentTransaction:
        return PaymentTransaction.objects.create(
            payment=payment,
            previous_status=entry.previous_status,
            new_status=entry.new_status,
            event_source=entry.event_source,
            event_type=entry.event_type,
            gateway_event_id=entry.gateway_event_id or "",
            idempotency_key=entry.idempotency_key or "",
            amount=entry.amount,
            description=entry.description[:255],
            raw_payload=entry.raw_payload,
            request_metadata=entry.request_metadata,
        )

    @staticmethod
    def has_key(payment: Payment, idempotency_key: str) -> bool:
        if not idempotency_key:
            return False
        return PaymentTransaction.objects.filter(payment=payment, idempotency_key=idempotency_key).exists()

    @staticmethod
    def history(payment: Payment) -> list[PaymentTransaction]:
        return list(PaymentTransaction.objects.filter(payment=payment).order_by("created_at", "id"))


def replay_status(history: Iterable[PaymentTransaction]) -> str | None:
    """Fold the history into the status it describes.

    Rejected attempts are recorded with ``previous == new`` so they replay as
    no-ops. A gap in the chain raises ``PaymentDomainError``.
    """
    status = None
    for tx in history:
        if tx.previous_status != status:
            raise PaymentDomainError(
                f"Audit trail gap at transaction {tx.pk}: expected {status!r}, found {tx.previous_status!r}."
            )
        status = tx.new_status
    return status
