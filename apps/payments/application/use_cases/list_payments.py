from __future__ import annotations

from dataclasses import dataclass

from apps.payments.application.services.audit_trail import AuditTrailService
from apps.payments.domain.errors import PaymentNotFoundError
from apps.payments.models import Payment, PaymentTransaction

MAX_PER_PAGE = 100


@dataclass(frozen=True)
class ListPaymentsCommand:
    enrollment_id: str = ""
    gateway: str = ""
    status: str = ""
    payment_method: str = ""
    page: int = 1
    per_page: int = 20


@dataclass(frozen=True)
class ListPaymentsResult:
    payments: list[Payment]
    total: int
    page: int
    per_page: int


class ListPaymentsUseCase:
    @staticmethod
    def execute(cmd: ListPaymentsCommand) -> ListPaymentsResult:
        qs = Payment.objects.all()
        if cmd.enrollment_id:
            qs = qs.filter(enrollment_id=cmd.enrollment_id)
        if cmd.gateway:
            qs = qs.filter(gateway=cmd.gateway.strip().lower())
        if cmd.status:
            qs = qs.filter(status=cmd.status)
        if cmd.payment_method:
            qs = qs.filter(payment_method=cmd.payment_method)
        page = max(cmd.page, 1)
        per_page = min(max(cmd.per_page, 1), MAX_PER_PAGE)
        offset = (page - 1) * per_page
        return ListPaymentsResult(
            payments=list(qs[offset : offset + per_page]),
            total=qs.count(),
            page=page,
            per_page=per_page,
        )


class GetPaymentHistoryUseCase:
    @staticmethod
    def execute(payment_id: str) -> tuple[Payment, list[PaymentTransaction]]:
        payment = Payment.objects.filter(pk=payment_id).first()
        if payment is None:
            raise PaymentNotFoundError("Payment not found.")
        return payment, AuditTrailService.history(payment)
