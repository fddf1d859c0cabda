from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.payments"
    verbose_name = "Payments"

    gateway_registry = None

    def ready(self) -> None:
        from apps.payments.infrastructure.wiring import build_gateway_registry

        self.gateway_registry = build_gateway_registry()
