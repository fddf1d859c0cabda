import uuid
from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models

STATUS_CHOICES = [
    ("pending", "Pending"),
    ("awaiting_payment", "Awaiting Payment"),
    ("confirmed", "Confirmed"),
    ("received", "Received"),
    ("overdue", "Overdue"),
    ("refund_requested", "Refund Requested"),
    ("refunded", "Refunded"),
    ("partially_refunded", "Partially Refunded"),
    ("chargeback", "Chargeback"),
    ("failed", "Failed"),
    ("cancelled", "Cancelled"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("coupons", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("enrollment_id", models.CharField(db_index=True, max_length=64)),
                ("payer_user_id", models.CharField(blank=True, default="", max_length=64)),
                ("payer_name", models.CharField(max_length=200)),
                ("payer_email", models.EmailField(blank=True, default="", max_length=254)),
                ("payer_document", models.CharField(blank=True, default="", max_length=32)),
                ("gross_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("discount_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("net_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("gateway_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("refunded_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("credit_card", "Credit Card"),
                            ("debit_card", "Debit Card"),
                            ("boleto", "Boleto"),
                            ("pix", "Pix"),
                            ("bank_transfer", "Bank Transfer"),
                            ("free", "Free"),
                        ],
                        max_length=20,
                    ),
                ),
                ("gateway", models.CharField(max_length=50)),
                ("gateway_payment_id", models.CharField(blank=True, max_length=100, null=True)),
                ("gateway_customer_id", models.CharField(blank=True, default="", max_length=100)),
                ("gateway_invoice_url", models.URLField(blank=True, default="", max_length=500)),
                ("installment_count", models.PositiveSmallIntegerField(default=1)),
                ("status", models.CharField(choices=STATUS_CHOICES, default="pending", max_length=32)),
                ("instructor_id", models.CharField(blank=True, default="", max_length=64)),
                ("course_id", models.CharField(blank=True, default="", max_length=64)),
                ("due_date", models.DateField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "coupon",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="coupons.coupon",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["gateway", "gateway_payment_id"], name="payment_gateway_ref_idx"),
                    models.Index(fields=["status", "created_at"], name="payment_status_time_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("gateway_payment_id__isnull", False)),
                        fields=("gateway", "gateway_payment_id"),
                        name="payment_unique_gateway_ref",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("previous_status", models.CharField(blank=True, max_length=32, null=True)),
                ("new_status", models.CharField(max_length=32)),
                (
                    "event_source",
                    models.CharField(
                        choices=[
                            ("webhook", "Webhook"),
                            ("manual", "Manual"),
                            ("system", "System"),
                            ("scheduler", "Scheduler"),
                            ("api", "Api"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("created", "Created"),
                            ("status_changed", "Status Changed"),
                            ("webhook_received", "Webhook Received"),
                            ("refund_requested", "Refund Requested"),
                            ("error", "Error"),
                        ],
                        max_length=32,
                    ),
                ),
                ("gateway_event_id", models.CharField(blank=True, default="", max_length=128)),
                ("idempotency_key", models.CharField(blank=True, default="", max_length=200)),
                ("amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("raw_payload", models.BinaryField(blank=True, null=True)),
                ("request_metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "payment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["payment", "created_at"], name="payment_tx_payment_time_idx"),
                    models.Index(fields=["gateway_event_id"], name="payment_tx_event_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("idempotency_key", ""), _negated=True),
                        fields=("payment", "idempotency_key"),
                        name="payment_tx_unique_idempotency",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="RevenueSplit",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("enrollment_id", models.CharField(db_index=True, max_length=64)),
                ("gross_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("net_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("platform_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("payment_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("instructor_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("platform_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("instructor_percent", models.DecimalField(decimal_places=2, max_digits=5)),
                ("platform_percent", models.DecimalField(decimal_places=2, max_digits=5)),
                ("instructor_id", models.CharField(blank=True, default="", max_length=64)),
                ("payment_method", models.CharField(max_length=20)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("processed", "Processed"), ("failed", "Failed")],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "payment",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="revenue_split",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="revenue_split_status_idx"),
                ],
            },
        ),
    ]
