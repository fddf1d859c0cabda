import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("coupons", "0001_initial"),
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="CouponUsage",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("user_id", models.CharField(blank=True, db_index=True, default="", max_length=64)),
                ("enrollment_id", models.CharField(blank=True, default="", max_length=64)),
                ("course_id", models.CharField(blank=True, default="", max_length=64)),
                ("discount_type", models.CharField(max_length=20)),
                ("discount_value", models.DecimalField(decimal_places=2, max_digits=12)),
                ("discount_applied", models.DecimalField(decimal_places=2, max_digits=12)),
                ("original_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("final_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("used_at", models.DateTimeField(auto_now_add=True)),
                (
                    "coupon",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="usages",
                        to="coupons.coupon",
                    ),
                ),
                (
                    "payment",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="coupon_usage",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["coupon", "user_id"], name="coupon_usage_user_idx"),
                ],
            },
        ),
    ]
