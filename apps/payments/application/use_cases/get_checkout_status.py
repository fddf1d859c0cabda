"""
Checkout status polling.

PT: Consulta o pagamento mais recente de uma matrícula, com o status ao vivo do gateway.
EN: Latest payment of an enrollment, refreshed with a best-effort live lookup
so the payer can poll for settlement and fetch PIX/boleto details again.
"""

from __future__ import annotations

from dataclasses import dataclass

from apps.payments.application.registry import PaymentGatewayRegistry
from apps.payments.application.use_cases.checkout import payment_split
from apps.payments.application.use_cases.get_payment_status import GetPaymentStatusUseCase
from apps.payments.application.use_cases.list_payments import ListPaymentsCommand, ListPaymentsUseCase
from apps.payments.domain.errors import GatewayNotRegisteredError, PaymentNotFoundError, PaymentValidationError
from apps.payments.domain.fees import RevenueSplitResult
from apps.payments.domain.types import DEFAULT_FEES, GatewayPayment
from apps.payments.models import Payment


@dataclass(frozen=True)
class GetCheckoutStatusCommand:
    enrollment_id: str


@dataclass(frozen=True)
class CheckoutStatusResult:
    payment: Payment
    split: RevenueSplitResult
    gateway_status: str | None = None
    gateway_payment: GatewayPayment | None = None


class GetCheckoutStatusUseCase:
    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def execute(self, cmd: GetCheckoutStatusCommand) -> CheckoutStatusResult:
        enrollment_id = (cmd.enrollment_id or "").strip()
        if not enrollment_id:
            raise PaymentValidationError("Enrollment ID is required.", field="enrollment_id")

        latest = ListPaymentsUseCase.execute(ListPaymentsCommand(enrollment_id=enrollment_id, per_page=1))
        if not latest.payments:
            raise PaymentNotFoundError("No payment found for this enrollment.")
        payment = latest.payments[0]

        remote = GetPaymentStatusUseCase(self.registry)._live_payment(payment)
        try:
            fees = self.registry.get(payment.gateway).get_fees()
        except GatewayNotRegisteredError:
            fees = DEFAULT_FEES
        return CheckoutStatusResult(
            payment=payment,
            split=payment_split(payment, fees),
            gateway_status=remote.status if remote else None,
            gateway_payment=remote,
        )
