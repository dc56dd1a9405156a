"""
Django app configuration for e-Factura
"""

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class EFacturaAppConfig(AppConfig):
    name = "efactura"
    verbose_name = "ANAF e-Factura"

    def ready(self) -> None:
        """Report incomplete configuration once, when Django starts."""
        from .settings import efactura_settings  # noqa: PLC0415

        issues = efactura_settings.validate_configuration()
        if issues:
            logger.info(f"e-Factura API client not fully configured: {'; '.join(issues)}")
