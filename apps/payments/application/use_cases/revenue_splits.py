from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from apps.payments.application.registry import PaymentGatewayRegistry
from apps.payments.domain.errors import InvalidTransitionError, PaymentNotFoundError, PaymentValidationError
from apps.payments.domain.fees import RevenueSplitResult, calculate_revenue_split
from apps.payments.domain.policies import validate_amount
from apps.payments.models import RevenueSplit

logger = logging.getLogger("condotrack.payments")


@dataclass(frozen=True)
class SimulateRevenueSplitCommand:
    amount: Decimal
    payment_method: str
    instructor_percent: Decimal | None = None
    platform_percent: Decimal | None = None


class SimulateRevenueSplitUseCase:
    """Fee and split preview using the active gateway's fee schedule."""

    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def execute(self, cmd: SimulateRevenueSplitCommand) -> RevenueSplitResult:
        amount = validate_amount(cmd.amount)
        method = (cmd.payment_method or "").strip().lower()
        if not method:
            raise PaymentValidationError("Payment method is required.", field="payment_method")
        instructor = cmd.instructor_percent
        if instructor is None:
            instructor = Decimal(str(settings.REVENUE_INSTRUCTOR_PERCENT))
        platform = cmd.platform_percent
        if platform is None:
            platform = Decimal(str(settings.REVENUE_PLATFORM_PERCENT))
        for field, value in (("instructor_percent", instructor), ("platform_percent", platform)):
            if not Decimal("0") <= value <= Decimal("100"):
                raise PaymentValidationError(f"{field} must be between 0 and 100.", field=field)
        return calculate_revenue_split(amount, method, instructor, platform, self.registry.get_active().get_fees())


@dataclass(frozen=True)
class UpdateRevenueSplitStatusCommand:
    split_id: int
    status: str


class UpdateRevenueSplitStatusUseCase:
    """Payout bookkeeping: a pending split becomes processed or failed, once."""

    _TARGETS = {RevenueSplit.STATUS_PROCESSED, RevenueSplit.STATUS_FAILED}

    @staticmethod
    @transaction.atomic
    def execute(cmd: UpdateRevenueSplitStatusCommand) -> RevenueSplit:
        status = (cmd.status or "").strip().lower()
        if status not in UpdateRevenueSplitStatusUseCase._TARGETS:
            raise PaymentValidationError("Status must be 'processed' or 'failed'.", field="status")
        split = RevenueSplit.objects.select_for_update().filter(pk=cmd.split_id).first()
        if split is None:
            raise PaymentNotFoundError("Revenue split not found.")
        if split.status != RevenueSplit.STATUS_PENDING:
            raise InvalidTransitionError(
                f"Revenue split is already {split.status}.", current_status=split.status, requested_status=status
            )
        split.status = status
        fields = ["status", "updated_at"]
        if status == RevenueSplit.STATUS_PROCESSED:
            split.processed_at = timezone.now()
            fields.append("processed_at")
        split.save(update_fields=fields)
        logger.info("revenue_split_status_changed", extra={"split_id": split.pk, "status": status})
        return split


@dataclass(frozen=True)
class ListRevenueSplitsCommand:
    payment_id: str = ""
    enrollment_id: str = ""
    instructor_id: str = ""
    status: str = ""


class ListRevenueSplitsUseCase:
    @staticmethod
    def execute(cmd: ListRevenueSplitsCommand) -> list[RevenueSplit]:
        qs = RevenueSplit.objects.all().order_by("-created_at")
        if cmd.payment_id:
            qs = qs.filter(payment_id=cmd.payment_id)
        if cmd.enrollment_id:
            qs = qs.filter(enrollment_id=cmd.enrollment_id)
        if cmd.instructor_id:
            qs = qs.filter(instructor_id=cmd.instructor_id)
        if cmd.status:
            qs = qs.filter(status=cmd.status)
        return list(qs)


@dataclass(frozen=True)
class InstructorEarnings:
    instructor_id: str
    pending: Decimal
    processed: Decimal

    @property
    def total(self) -> Decimal:
        return self.pending + self.processed


class GetInstructorEarningsUseCase:
    @staticmethod
    def execute(instructor_id: str) -> InstructorEarnings:
        qs = RevenueSplit.objects.filter(instructor_id=instructor_id)
        totals = {
            status: qs.filter(status=status).aggregate(total=Sum("instructor_amount"))["total"] or Decimal("0.00")
            for status in (RevenueSplit.STATUS_PENDING, RevenueSplit.STATUS_PROCESSED)
        }
        return InstructorEarnings(
            instructor_id=instructor_id,
            pending=totals[RevenueSplit.STATUS_PENDING],
            processed=totals[RevenueSplit.STATUS_PROCESSED],
        )
