"""
Payments ledger models.

PT: Registro de cobranças, trilha de auditoria imutável e divisão de receita.
EN: Charge ledger, append-only audit trail and instructor/platform revenue split.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models

from apps.payments.domain.errors import ImmutableRecordError, PaymentRetentionError
from apps.payments.domain.types import EventSource, PaymentMethod, TransactionEventType, status_choices

ZERO = Decimal("0.00")


class PaymentQuerySet(models.QuerySet):
    def delete(self):
        raise PaymentRetentionError("Payments are retained and cannot be deleted.")


class Payment(models.Model):
    """One attempted or completed charge."""

    STATUS_CHOICES = status_choices()
    METHOD_CHOICES = [(m.value, m.value.replace("_", " ").title()) for m in PaymentMethod]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    enrollment_id = models.CharField(max_length=64, db_index=True)
    payer_user_id = models.CharField(max_length=64, blank=True, default="")
    payer_name = models.CharField(max_length=200)
    payer_email = models.EmailField(max_length=254, blank=True, default="")
    payer_document = models.CharField(max_length=32, blank=True, default="")

    gross_amount = models.DecimalField(max_digits=12, decimal_places=2)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    net_amount = models.DecimalField(max_digits=12, decimal_places=2)
    gateway_fee = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    refunded_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    payment_method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    gateway = models.CharField(max_length=50)
    gateway_payment_id = models.CharField(max_length=100, null=True, blank=True)
    gateway_customer_id = models.CharField(max_length=100, blank=True, default="")
    gateway_invoice_url = models.URLField(max_length=500, blank=True, default="")

    installment_count = models.PositiveSmallIntegerField(default=1)

    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default="pending")
    coupon = models.ForeignKey(
        "coupons.Coupon", on_delete=models.PROTECT, null=True, blank=True, related_name="payments"
    )
    instructor_id = models.CharField(max_length=64, blank=True, default="")
    course_id = models.CharField(max_length=64, blank=True, default="")

    due_date = models.DateField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PaymentQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["gateway", "gateway_payment_id"], name="payment_gateway_ref_idx"),
            models.Index(fields=["status", "created_at"], name="payment_status_time_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["gateway", "gateway_payment_id"],
                condition=models.Q(gateway_payment_id__isnull=False),
                name="payment_unique_gateway_ref",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.enrollment_id} - {self.gross_amount} - {self.status}"

    @property
    def charged_amount(self) -> Decimal:
        return self.gross_amount - self.discount_amount

    def delete(self, *args, **kwargs):
        raise PaymentRetentionError("Payments are retained and cannot be deleted.")


class PaymentTransactionQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ImmutableRecordError("Payment transactions are append-only.")

    def delete(self):
        raise ImmutableRecordError("Payment transactions are append-only.")


class PaymentTransaction(models.Model):
    """Append-only record of one status change (or status-change attempt)."""

    SOURCE_CHOICES = [(s.value, s.value.title()) for s in EventSource]
    EVENT_TYPE_CHOICES = [(t.value, t.value.replace("_", " ").title()) for t in TransactionEventType]

    payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name="transactions")
    previous_status = models.CharField(max_length=32, null=True, blank=True)
    new_status = models.CharField(max_length=32)
    event_source = models.CharField(max_length=20, choices=SOURCE_CHOICES)
    event_type = models.CharField(max_length=32, choices=EVENT_TYPE_CHOICES)
    gateway_event_id = models.CharField(max_length=128, blank=True, default="")
    idempotency_key = models.CharField(max_length=200, blank=True, default="")
    amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    description = models.CharField(max_length=255, blank=True, default="")
    raw_payload = models.BinaryField(null=True, blank=True)
    request_metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = PaymentTransactionQuerySet.as_manager()

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["payment", "created_at"], name="payment_tx_payment_time_idx"),
            models.Index(fields=["gateway_event_id"], name="payment_tx_event_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["payment", "idempotency_key"],
                condition=~models.Q(idempotency_key=""),
                name="payment_tx_unique_idempotency",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.payment_id}: {self.previous_status or '-'} -> {self.new_status} ({self.event_type})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError("Payment transactions are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError("Payment transactions are append-only.")


class RevenueSplit(models.Model):
    STATUS_PENDING = "pending"
    STATUS_PROCESSED = "processed"
    STATUS_FAILED = "failed"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PROCESSED, "Processed"),
        (STATUS_FAILED, "Failed"),
    ]

    payment = models.OneToOneField(Payment, on_delete=models.PROTECT, related_name="revenue_split")
    enrollment_id = models.CharField(max_length=64, db_index=True)
    gross_amount = models.DecimalField(max_digits=12, decimal_places=2)
    net_amount = models.DecimalField(max_digits=12, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    payment_fee = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    instructor_amount = models.DecimalField(max_digits=12, decimal_places=2)
    platform_amount = models.DecimalField(max_digits=12, decimal_places=2)
    instructor_percent = models.DecimalField(max_digits=5, decimal_places=2)
    platform_percent = models.DecimalField(max_digits=5, decimal_places=2)
    instructor_id = models.CharField(max_length=64, blank=True, default="")
    payment_method = models.CharField(max_length=20)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "created_at"], name="revenue_split_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.payment_id} - {self.instructor_amount}/{self.platform_amount} ({self.status})"
