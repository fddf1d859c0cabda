from __future__ import annotations

import logging

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from apps.payments.application.registry import PaymentGatewayRegistry

logger = logging.getLogger("condotrack.payments")


def build_gateway_registry(config: dict | None = None, default_code: str | None = None) -> PaymentGatewayRegistry:
    """Instantiate every adapter named in ``PAYMENT_GATEWAYS``.

    Each entry maps a code to ``{"BACKEND": "<dotted path>", "OPTIONS": {...}}``.
    """
    config = getattr(settings, "PAYMENT_GATEWAYS", {}) if config is None else config
    default_code = getattr(settings, "PAYMENT_DEFAULT_GATEWAY", "") if default_code is None else default_code

    registry = PaymentGatewayRegistry()
    for code, entry in config.items():
        backend = (entry or {}).get("BACKEND")
        if not backend:
            raise ImproperlyConfigured(f"PAYMENT_GATEWAYS['{code}'] is missing BACKEND.")
        options = entry.get("OPTIONS") or {}
        adapter = import_string(backend)(**options)
        if adapter.code != code.strip().lower():
            raise ImproperlyConfigured(f"PAYMENT_GATEWAYS key '{code}' does not match adapter code '{adapter.code}'.")
        if "webhook_secret" in options and not options["webhook_secret"]:
            logger.warning("payment_gateway_webhook_secret_missing", extra={"gateway": adapter.code})
        registry.register(adapter)

    if default_code:
        registry.set_active(default_code)
    logger.info(
        "payment_gateways_registered",
        extra={"gateways": registry.registered_codes(), "default_gateway": default_code or ""},
    )
    return registry
