"""
Status-update unit of work.

PT: Aplica uma mudança de status ao pagamento, registra a auditoria e os efeitos derivados.
EN: Applies one status change to a locked payment together with its audit
entry, revenue split and coupon redemption, all in the caller's transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.coupons.application.services.redemption import CouponRedemptionService
from apps.payments.application.services.audit_trail import AuditEntry, AuditTrailService
from apps.payments.domain.fees import allocate_net_amount, round_money
from apps.payments.domain.policies import ensure_amounts_consistent
from apps.payments.domain.state_machine import PaymentStateMachine
from apps.payments.domain.types import (
    REFUND_STATUSES,
    SETTLED_STATUSES,
    EventSource,
    PaymentStatus,
    TransactionEventType,
)
from apps.payments.models import Payment, PaymentTransaction, RevenueSplit

logger = logging.getLogger("condotrack.payments")


class TransitionOutcome(StrEnum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"


@dataclass(frozen=True)
class StatusChange:
    new_status: str
    event_source: str
    event_id: str | None = None
    gateway_event: str = ""
    paid_at: datetime | None = None
    net_amount: Decimal | None = None
    refunded_amount: Decimal | None = None
    raw_payload: bytes | None = None
    description: str = ""
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class TransitionResult:
    outcome: TransitionOutcome
    payment: Payment
    previous_status: str
    transaction: PaymentTransaction | None = None


def idempotency_key_for(payment: Payment, change: StatusChange) -> str:
    if change.event_id:
        return change.event_id
    if change.event_source == EventSource.WEBHOOK:
        paid_at = change.paid_at.isoformat() if change.paid_at else ""
        return f"{payment.pk}:{change.new_status}:{paid_at}"
    return ""


def lock_payment(payment_id) -> Payment | None:
    return Payment.objects.select_for_update().filter(pk=payment_id).first()


class PaymentStatusTransitioner:
    """Caller must pass a payment fetched with ``select_for_update``."""

    @staticmethod
    @transaction.atomic
    def apply(payment: Payment, change: StatusChange) -> TransitionResult:
        current = payment.status
        key = idempotency_key_for(payment, change)
        if AuditTrailService.has_key(payment, key):
            logger.info(
                "payment_event_duplicate",
                extra={"payment_id": str(payment.pk), "idempotency_key": key, "source": change.event_source},
            )
            return TransitionResult(outcome=TransitionOutcome.DUPLICATE, payment=payment, previous_status=current)

        base_entry = {
            "event_source": change.event_source,
            "gateway_event_id": change.event_id or "",
            "idempotency_key": key,
            "raw_payload": change.raw_payload,
        }

        if change.new_status == current:
            changed = PaymentStatusTransitioner._apply_amounts(payment, change)
            if changed:
                payment.save(update_fields=[*changed, "updated_at"])
            tx = AuditTrailService.append(
                payment,
                AuditEntry(
                    previous_status=current,
                    new_status=current,
                    event_type=TransactionEventType.WEBHOOK_RECEIVED,
                    amount=payment.charged_amount,
                    description=change.description or f"Event {change.gateway_event or 'received'} with no status change",
                    request_metadata={**change.metadata, "gateway_event": change.gateway_event},
                    **base_entry,
                ),
            )
            return TransitionResult(
                outcome=TransitionOutcome.UNCHANGED, payment=payment, previous_status=current, transaction=tx
            )

        if not PaymentStateMachine.can_transition(current, change.new_status):
            tx = AuditTrailService.append(
                payment,
                AuditEntry(
                    previous_status=current,
                    new_status=current,
                    event_type=TransactionEventType.ERROR,
                    amount=payment.charged_amount,
                    description=f"Rejected transition {current} -> {change.new_status}",
                    request_metadata={
                        **change.metadata,
                        "gateway_event": change.gateway_event,
                        "requested_status": change.new_status,
                    },
                    **base_entry,
                ),
            )
            logger.warning(
                "payment_transition_rejected",
                extra={
                    "payment_id": str(payment.pk),
                    "current_status": current,
                    "requested_status": change.new_status,
                    "source": change.event_source,
                },
            )
            return TransitionResult(
                outcome=TransitionOutcome.REJECTED, payment=payment, previous_status=current, transaction=tx
            )

        now = timezone.now()
        changed = ["status", *PaymentStatusTransitioner._apply_amounts(payment, change)]
        payment.status = change.new_status
        if change.new_status in SETTLED_STATUSES and payment.paid_at is None:
            payment.paid_at = change.paid_at or now
            changed.append("paid_at")
        if change.new_status in REFUND_STATUSES:
            payment.refunded_at = now
            changed.append("refunded_at")
            if change.new_status == PaymentStatus.REFUNDED and change.refunded_amount is None:
                payment.refunded_amount = payment.charged_amount
                changed.append("refunded_amount")
        if change.new_status == PaymentStatus.CANCELLED:
            payment.cancelled_at = now
            changed.append("cancelled_at")
        payment.save(update_fields=[*dict.fromkeys(changed), "updated_at"])

        tx = AuditTrailService.append(
            payment,
            AuditEntry(
                previous_status=current,
                new_status=change.new_status,
                event_type=(
                    TransactionEventType.REFUND_REQUESTED
                    if change.new_status == PaymentStatus.REFUND_REQUESTED
                    else TransactionEventType.STATUS_CHANGED
                ),
                amount=payment.charged_amount,
                description=change.description or f"Status changed from {current} to {change.new_status}",
                request_metadata={**change.metadata, "gateway_event": change.gateway_event},
                **base_entry,
            ),
        )

        if change.new_status in SETTLED_STATUSES and current not in SETTLED_STATUSES:
            PaymentStatusTransitioner._on_settled(payment)
        if change.new_status in (PaymentStatus.REFUNDED, PaymentStatus.CHARGEBACK):
            RevenueSplit.objects.filter(payment=payment, status=RevenueSplit.STATUS_PENDING).update(
                status=RevenueSplit.STATUS_FAILED
            )

        logger.info(
            "payment_status_changed",
            extra={
                "payment_id": str(payment.pk),
                "previous_status": current,
                "new_status": change.new_status,
                "source": change.event_source,
            },
        )
        return TransitionResult(
            outcome=TransitionOutcome.APPLIED, payment=payment, previous_status=current, transaction=tx
        )

    @staticmethod
    def _apply_amounts(payment: Payment, change: StatusChange) -> list[str]:
        changed: list[str] = []
        if change.net_amount is not None:
            net = round_money(change.net_amount)
            fee = payment.charged_amount - net
            if fee >= 0:
                payment.net_amount = net
                payment.gateway_fee = fee
                changed += ["net_amount", "gateway_fee"]
            else:
                logger.warning(
                    "payment_net_amount_ignored",
                    extra={"payment_id": str(payment.pk), "reported_net": str(net)},
                )
        if change.refunded_amount is not None:
            payment.refunded_amount = min(round_money(change.refunded_amount), payment.gross_amount)
            changed.append("refunded_amount")
        ensure_amounts_consistent(
            gross_amount=payment.gross_amount,
            discount_amount=payment.discount_amount,
            gateway_fee=payment.gateway_fee,
            net_amount=payment.net_amount,
            refunded_amount=payment.refunded_amount,
        )
        return changed

    @staticmethod
    def _on_settled(payment: Payment) -> None:
        if not RevenueSplit.objects.filter(payment=payment).exists():
            instructor_percent = Decimal(str(settings.REVENUE_INSTRUCTOR_PERCENT))
            platform_percent = Decimal(str(settings.REVENUE_PLATFORM_PERCENT))
            instructor_amount, platform_amount = allocate_net_amount(
                payment.net_amount, instructor_percent, platform_percent
            )
            RevenueSplit.objects.create(
                payment=payment,
                enrollment_id=payment.enrollment_id,
                gross_amount=payment.charged_amount,
                net_amount=payment.net_amount,
                platform_fee=platform_amount,
                payment_fee=payment.gateway_fee,
                instructor_amount=instructor_amount,
                platform_amount=platform_amount,
                instructor_percent=instructor_percent,
                platform_percent=platform_percent,
                instructor_id=payment.instructor_id,
                payment_method=payment.payment_method,
            )
        CouponRedemptionService.redeem(payment=payment)
