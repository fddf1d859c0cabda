from __future__ import annotations

import logging
from dataclasses import dataclass

from apps.payments.application.registry import PaymentGatewayRegistry
from apps.payments.domain.policies import require_text
from apps.payments.domain.types import CreateCustomerRequest, GatewayCustomer

logger = logging.getLogger("condotrack.payments")


@dataclass(frozen=True)
class CreateCustomerCommand:
    name: str
    document: str
    email: str = ""
    phone: str = ""


class CreateCustomerUseCase:
    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def execute(self, cmd: CreateCustomerCommand) -> GatewayCustomer:
        name = require_text(cmd.name, field="name", message="Customer name is required.")
        document = require_text(cmd.document, field="document", message="Customer document is required.")
        gateway = self.registry.get_active()
        customer = gateway.create_customer(
            CreateCustomerRequest(
                name=name,
                email=(cmd.email or "").strip(),
                document=document,
                phone=(cmd.phone or "").strip(),
            )
        )
        logger.info("gateway_customer_created", extra={"gateway": gateway.code, "customer_id": customer.gateway_id})
        return customer
