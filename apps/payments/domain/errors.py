from __future__ import annotations


class PaymentDomainError(ValueError):
    pass


class PaymentValidationError(PaymentDomainError):
    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class PaymentNotFoundError(PaymentDomainError):
    pass


class InvalidTransitionError(PaymentDomainError):
    def __init__(self, message: str, *, current_status: str = "", requested_status: str = ""):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status


class WebhookSignatureError(PaymentDomainError):
    pass


class WebhookPayloadError(PaymentDomainError):
    pass


class GatewayNotRegisteredError(PaymentDomainError):
    pass


class PaymentGatewayError(PaymentDomainError):
    """Upstream provider failure (network, provider rejection)."""

    def __init__(self, message: str, *, gateway: str = "", retryable: bool = True):
        super().__init__(message)
        self.gateway = gateway
        self.retryable = retryable


class ImmutableRecordError(PaymentDomainError):
    pass


class PaymentRetentionError(PaymentDomainError):
    pass
