import logging

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class MarketplaceConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "marketplace"

    def ready(self):
        if getattr(settings, "TRACING_ENABLED", False):
            from marketplace.infra.observability.tracing import setup_tracing

            setup_tracing(
                service_name=getattr(settings, "SERVICE_NAME", "gigmarket-orders"),
                endpoint=getattr(settings, "OTLP_ENDPOINT", "http://localhost:4318/v1/traces"),
            )
