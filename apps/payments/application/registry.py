from __future__ import annotations

from apps.payments.domain.errors import GatewayNotRegisteredError
from apps.payments.domain.ports import PaymentGatewayPort


def _key(code: str | None) -> str:
    return (code or "").strip().lower()


class PaymentGatewayRegistry:
    """Name-keyed set of gateway adapters with one active default.

    Built once at startup and passed to use cases; nothing here is global.
    """

    def __init__(self) -> None:
        self._registry: dict[str, PaymentGatewayPort] = {}
        self._active: str | None = None

    def register(self, adapter: PaymentGatewayPort) -> None:
        key = _key(adapter.code)
        if not key:
            raise ValueError("Gateway adapter must define a code.")
        self._registry[key] = adapter

    def set_active(self, code: str) -> None:
        key = _key(code)
        if key not in self._registry:
            raise GatewayNotRegisteredError(f"Gateway not registered: {code}")
        self._active = key

    def get_active(self) -> PaymentGatewayPort:
        if self._active and self._active in self._registry:
            return self._registry[self._active]
        for adapter in self._registry.values():
            return adapter
        raise GatewayNotRegisteredError("No payment gateway registered.")

    def get(self, code: str) -> PaymentGatewayPort:
        key = _key(code)
        if key not in self._registry:
            raise GatewayNotRegisteredError(f"Unknown payment provider: {code}")
        return self._registry[key]

    def registered_codes(self) -> list[str]:
        return list(self._registry)

    def available_providers(self) -> list[dict]:
        return [{"code": adapter.code, "name": adapter.name} for adapter in self._registry.values()]
