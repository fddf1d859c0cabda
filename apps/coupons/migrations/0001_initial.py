import uuid

from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Coupon",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("code", models.CharField(max_length=50, unique=True)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                (
                    "discount_type",
                    models.CharField(choices=[("percentage", "Percentage"), ("fixed", "Fixed")], max_length=20),
                ),
                ("discount_value", models.DecimalField(decimal_places=2, max_digits=12)),
                ("max_discount_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("minimum_order_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("max_uses", models.PositiveIntegerField(blank=True, null=True)),
                ("max_uses_per_user", models.PositiveIntegerField(blank=True, null=True)),
                ("current_uses", models.PositiveIntegerField(default=0)),
                (
                    "applies_to",
                    models.CharField(
                        choices=[("all_courses", "All courses"), ("specific_courses", "Specific courses")],
                        default="all_courses",
                        max_length=20,
                    ),
                ),
                ("course_ids", models.TextField(blank=True, null=True)),
                ("starts_at", models.DateTimeField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_by", models.CharField(blank=True, default="", max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("max_uses__isnull", True), ("current_uses__lte", models.F("max_uses")), _connector="OR"),
                        name="coupon_uses_within_limit",
                    ),
                ],
            },
        ),
    ]
