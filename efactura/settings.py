"""
e-Factura settings and fixed ANAF constants.

Constants here are fixed by ANAF/EU regulations. Everything that differs
between deployments is read from Django settings with a defaults table
as fallback.

Usage:
    from efactura.settings import efactura_settings

    timeout = efactura_settings.api_timeout
    api_url = efactura_settings.api_base_url
"""

from __future__ import annotations

import logging
import zoneinfo
from enum import StrEnum
from typing import Any

from django.conf import settings as django_settings

logger = logging.getLogger(__name__)


# ===============================================================================
# CONSTANTS - These are fixed by ANAF/EU regulations and cannot be configured
# ===============================================================================

# CIUS-RO version (updated by ANAF, not configurable)
CIUS_RO_VERSION = "1.0.1"
CIUS_RO_CUSTOMIZATION_ID = f"urn:cen.eu:en16931:2017#compliant#urn:efactura.mfinante.ro:CIUS-RO:{CIUS_RO_VERSION}"

# UBL 2.1 Namespaces (fixed by OASIS standard)
UBL_NAMESPACES = {
    "ubl": "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2",
    "cbc": "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2",
    "cac": "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2",
}

# Document defaults
DEFAULT_CURRENCY = "RON"
DEFAULT_COUNTRY_CODE = "RO"
DEFAULT_UNIT_CODE = "EA"

# Payment means code (UNCL4461) used when a payee IBAN is given
PAYMENT_MEANS_CREDIT_TRANSFER = "30"

# Exemption reason for suppliers outside the VAT system
VAT_EXEMPTION_NOT_SUBJECT = "VATEX-EU-O"

# ANAF endpoints
ANAF_API_HOST = "https://api.anaf.ro"
ANAF_OAUTH_BASE_URL = "https://logincert.anaf.ro/anaf-oauth2/v1"
ANAF_OAUTH_AUTHORIZE_URL = f"{ANAF_OAUTH_BASE_URL}/authorize"
ANAF_OAUTH_TOKEN_URL = f"{ANAF_OAUTH_BASE_URL}/token"  # noqa: S105
ANAF_SIGNATURE_VALIDATION_URL = f"{ANAF_API_HOST}/api/validate/signature"
ANAF_COMPANY_LOOKUP_URL = "https://webservicesp.anaf.ro/api/PlatitorTvaRest/v9/tva"

# REST paths relative to the environment base URL
UPLOAD_PATH = "/upload"
UPLOAD_B2C_PATH = "/uploadb2c"
STATUS_PATH = "/stareMesaj"
DOWNLOAD_PATH = "/descarcare"
LIST_MESSAGES_PATH = "/listaMesajeFactura"
LIST_MESSAGES_PAGINATED_PATH = "/listaMesajePaginatieFactura"
VALIDATE_PATH = "/validare"
TRANSFORM_PATH = "/transformare"

UPLOAD_STANDARDS = ("UBL", "CN", "CII", "RASP")
DOCUMENT_STANDARDS = ("FACT1", "FCN")

# Message list window accepted by ANAF (days)
MIN_MESSAGE_DAYS = 1
MAX_MESSAGE_DAYS = 60

# Seconds before expiry after which a token is treated as expired
TOKEN_EXPIRY_BUFFER_SECONDS = 30

# Romanian timezone (required by ANAF)
ROMANIA_TIMEZONE = zoneinfo.ZoneInfo("Europe/Bucharest")


class VATCategory(StrEnum):
    """VAT category codes per UNCL5305 used in generated documents."""

    STANDARD = "S"  # Standard rate
    ZERO = "Z"  # Zero rated goods
    NOT_SUBJECT = "O"  # Services outside scope of tax


class EFacturaEnvironment(StrEnum):
    """ANAF API environments."""

    TEST = "test"
    PRODUCTION = "prod"

    @property
    def base_url(self) -> str:
        return f"{ANAF_API_HOST}/{self.value}/FCTEL/rest"

    @property
    def oauth_base_url(self) -> str:
        return ANAF_OAUTH_BASE_URL


# ===============================================================================
# SETTING KEYS
# ===============================================================================


class EFacturaSettingKeys:
    """Setting keys for e-Factura configuration."""

    # General
    ENVIRONMENT = "efactura.environment"
    VAT_NUMBER = "efactura.vat_number"
    REFRESH_TOKEN = "efactura.refresh_token"  # noqa: S105

    # OAuth2 credentials
    CLIENT_ID = "efactura.client_id"
    CLIENT_SECRET = "efactura.client_secret"  # noqa: S105
    REDIRECT_URI = "efactura.redirect_uri"

    # HTTP behaviour
    API_TIMEOUT = "efactura.api.timeout"
    MAX_RETRIES = "efactura.api.max_retries"
    RETRY_DELAY = "efactura.api.retry_delay"

    # Token cache
    TOKEN_CACHE_ENABLED = "efactura.token_cache.enabled"  # noqa: S105


# ===============================================================================
# DEFAULT VALUES
# ===============================================================================

EFACTURA_DEFAULTS: dict[str, Any] = {
    EFacturaSettingKeys.ENVIRONMENT: EFacturaEnvironment.TEST.value,
    EFacturaSettingKeys.VAT_NUMBER: "",
    EFacturaSettingKeys.REFRESH_TOKEN: "",
    EFacturaSettingKeys.CLIENT_ID: "",
    EFacturaSettingKeys.CLIENT_SECRET: "",
    EFacturaSettingKeys.REDIRECT_URI: "",
    EFacturaSettingKeys.API_TIMEOUT: 30,
    EFacturaSettingKeys.MAX_RETRIES: 3,
    EFacturaSettingKeys.RETRY_DELAY: 1.0,
    EFacturaSettingKeys.TOKEN_CACHE_ENABLED: True,
}


# ===============================================================================
# SETTINGS SERVICE
# ===============================================================================


class EFacturaSettings:
    """
    Typed access to e-Factura configuration.

    Keys are dotted names; each one maps to a Django setting by replacing
    dots with underscores and upper-casing (``efactura.api.timeout`` is
    ``EFACTURA_API_TIMEOUT``). Unset values fall back to EFACTURA_DEFAULTS.
    """

    def _get_setting(self, key: str, default: Any = None) -> Any:
        """Get setting with fallback chain: Django settings -> default."""
        django_key = key.replace(".", "_").upper()
        django_value = getattr(django_settings, django_key, None)
        if django_value is not None:
            return django_value

        return EFACTURA_DEFAULTS.get(key, default)

    def _get_string(self, key: str, default: str = "") -> str:
        """Get string setting."""
        value = self._get_setting(key, default)
        return str(value) if value is not None else default

    def _get_int(self, key: str, default: int = 0) -> int:
        """Get integer setting."""
        value = self._get_setting(key, default)
        try:
            return int(value)
        except (ValueError, TypeError):
            logger.warning(f"Invalid integer for {key}: {value!r}, using {default}")
            return default

    def _get_float(self, key: str, default: float = 0.0) -> float:
        """Get float setting."""
        value = self._get_setting(key, default)
        try:
            return float(value)
        except (ValueError, TypeError):
            logger.warning(f"Invalid number for {key}: {value!r}, using {default}")
            return default

    def _get_bool(self, key: str, default: bool = False) -> bool:
        """Get boolean setting."""
        value = self._get_setting(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    # ===== General Settings =====

    @property
    def environment(self) -> EFacturaEnvironment:
        """Get current environment (test/prod)."""
        env = self._get_string(EFacturaSettingKeys.ENVIRONMENT, "test")
        try:
            return EFacturaEnvironment(env)
        except ValueError:
            logger.warning(f"Unknown e-Factura environment {env!r}, using test")
            return EFacturaEnvironment.TEST

    @property
    def api_base_url(self) -> str:
        """Get ANAF API base URL for current environment."""
        return self.environment.base_url

    @property
    def vat_number(self) -> str:
        return self._get_string(EFacturaSettingKeys.VAT_NUMBER)

    @property
    def refresh_token(self) -> str:
        return self._get_string(EFacturaSettingKeys.REFRESH_TOKEN)

    # ===== OAuth2 Settings =====

    @property
    def client_id(self) -> str:
        """Get OAuth2 client ID."""
        return self._get_string(EFacturaSettingKeys.CLIENT_ID)

    @property
    def client_secret(self) -> str:
        """Get OAuth2 client secret."""
        return self._get_string(EFacturaSettingKeys.CLIENT_SECRET)

    @property
    def redirect_uri(self) -> str:
        """Get OAuth2 redirect URI."""
        return self._get_string(EFacturaSettingKeys.REDIRECT_URI)

    # ===== HTTP Settings =====

    @property
    def api_timeout(self) -> int:
        """Request timeout in seconds."""
        return self._get_int(EFacturaSettingKeys.API_TIMEOUT, 30)

    @property
    def max_retries(self) -> int:
        return self._get_int(EFacturaSettingKeys.MAX_RETRIES, 3)

    @property
    def retry_delay(self) -> float:
        """Base delay for exponential backoff, in seconds."""
        return self._get_float(EFacturaSettingKeys.RETRY_DELAY, 1.0)

    @property
    def token_cache_enabled(self) -> bool:
        return self._get_bool(EFacturaSettingKeys.TOKEN_CACHE_ENABLED, True)

    # ===== Utility Methods =====

    def is_configured(self) -> bool:
        """Check if minimum required settings are configured."""
        required = [
            self.vat_number,
            self.client_id,
            self.client_secret,
            self.redirect_uri,
        ]
        return all(required)

    def validate_configuration(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.vat_number:
            issues.append("VAT number is not configured")
        if not self.refresh_token:
            issues.append("Refresh token is not configured")
        if not self.client_id:
            issues.append("OAuth client ID is not configured")
        if not self.client_secret:
            issues.append("OAuth client secret is not configured")
        if not self.redirect_uri:
            issues.append("OAuth redirect URI is not configured")

        return issues


# Global settings instance
efactura_settings = EFacturaSettings()
