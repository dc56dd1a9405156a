"""
ANAF e-Factura API client with automatic OAuth2 token management.

This client handles all communication with the Romanian ANAF e-Factura API:
- Document upload (B2B and B2C)
- Status checking
- Response download
- Message listing (simple and paginated)
- Remote XML validation, signature validation and PDF conversion

Reference:
- https://mfinante.gov.ro/web/efactura/informatii-tehnice
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import IO, Any, ClassVar

from django.core.cache import cache
from django.utils import timezone

from .auth import AnafAuthenticator, AuthConfig, TokenResponse
from .exceptions import APIError, AuthenticationError, EFacturaError, ValidationError
from .http import HttpClient, parse_response_body
from .responses import (
    ListMessagesResponse,
    MessageFilter,
    PaginatedMessagesResponse,
    StatusResponse,
    UploadResponse,
    XmlValidationResult,
    extract_error_message,
    is_error_response,
    join_validation_messages,
    parse_json_response,
    parse_status_response,
    parse_upload_response,
)
from .settings import (
    ANAF_SIGNATURE_VALIDATION_URL,
    DOCUMENT_STANDARDS,
    DOWNLOAD_PATH,
    LIST_MESSAGES_PAGINATED_PATH,
    LIST_MESSAGES_PATH,
    MAX_MESSAGE_DAYS,
    MIN_MESSAGE_DAYS,
    STATUS_PATH,
    TOKEN_EXPIRY_BUFFER_SECONDS,
    TRANSFORM_PATH,
    UPLOAD_B2C_PATH,
    UPLOAD_PATH,
    UPLOAD_STANDARDS,
    VALIDATE_PATH,
    EFacturaEnvironment,
    efactura_settings,
)
from .validators import strip_vat_prefix

logger = logging.getLogger(__name__)

XML_CONTENT_TYPE = "application/xml; charset=utf-8"
SIGNATURE_VALID_MARKER = "validate cu succes"


@dataclass
class EFacturaConfig:
    """Configuration for e-Factura API client."""

    vat_number: str
    refresh_token: str
    environment: EFacturaEnvironment = EFacturaEnvironment.TEST
    access_token: str = ""
    expires_at: datetime | None = None
    timeout: int = 30
    max_retries: int = 3
    retry_delay: float = 1.0
    use_token_cache: bool = True

    @classmethod
    def from_settings(cls) -> EFacturaConfig:
        """Create config from Django settings."""
        return cls(
            vat_number=efactura_settings.vat_number,
            refresh_token=efactura_settings.refresh_token,
            environment=efactura_settings.environment,
            timeout=efactura_settings.api_timeout,
            max_retries=efactura_settings.max_retries,
            retry_delay=efactura_settings.retry_delay,
            use_token_cache=efactura_settings.token_cache_enabled,
        )

    @property
    def base_url(self) -> str:
        return self.environment.base_url

    @property
    def cif(self) -> str:
        """Numeric CUI as expected by the ``cif`` query parameter."""
        return strip_vat_prefix(self.vat_number)

    def validate(self) -> None:
        if not self.vat_number or not self.vat_number.strip():
            raise ValidationError("VAT number is required")
        if not self.refresh_token or not self.refresh_token.strip():
            raise ValidationError("Refresh token is required for automatic authentication")


class EFacturaClient:
    """
    Client for Romanian ANAF e-Factura API.

    Access tokens are obtained from the configured refresh token and
    renewed automatically shortly before they expire.

    Usage:
        with EFacturaClient() as client:
            upload = client.upload_document(xml_content)
            if upload.success:
                status = client.get_upload_status(upload.upload_index)
    """

    # Token cache key prefix
    TOKEN_CACHE_KEY: ClassVar[str] = "efactura_token_{env}_{cif}"  # noqa: S105

    def __init__(
        self,
        config: EFacturaConfig | None = None,
        authenticator: AnafAuthenticator | None = None,
        http: HttpClient | None = None,
    ):
        self.config = config or EFacturaConfig.from_settings()
        self.config.validate()
        self.authenticator = authenticator or AnafAuthenticator(AuthConfig.from_settings())
        self.http = http or HttpClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            max_retries=self.config.max_retries,
            retry_delay=self.config.retry_delay,
        )
        self._refresh_token = self.config.refresh_token
        self._token: TokenResponse | None = None
        # A pre-issued access token is only trusted together with its expiry
        if self.config.access_token and self.config.expires_at:
            self._token = TokenResponse(
                access_token=self.config.access_token,
                refresh_token=self.config.refresh_token,
                expires_at=self.config.expires_at,
            )

    def close(self) -> None:
        """Close HTTP session."""
        self.http.close()

    def __enter__(self) -> EFacturaClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # --- Authentication ---

    @property
    def token_cache_key(self) -> str:
        return self.TOKEN_CACHE_KEY.format(env=self.config.environment.value, cif=self.config.cif)

    def _get_access_token(self) -> str:
        """Get valid access token, refreshing if needed."""
        token = self._get_cached_token()
        if token and not token.is_expired:
            return token.access_token

        try:
            token = self.authenticator.refresh_access_token(self._refresh_token)
        except EFacturaError as e:
            logger.error(f"e-Factura token refresh failed: {e}")
            raise AuthenticationError(f"Failed to refresh access token: {e}") from e

        # ANAF may rotate the refresh token
        if token.refresh_token:
            self._refresh_token = token.refresh_token
        self._cache_token(token)
        return token.access_token

    def _cache_token(self, token: TokenResponse) -> None:
        """Cache token with expiration."""
        self._token = token
        if not self.config.use_token_cache:
            return
        timeout = max(1, int((token.expires_at - timezone.now()).total_seconds()) - TOKEN_EXPIRY_BUFFER_SECONDS)
        cache.set(self.token_cache_key, token.to_dict(), timeout=timeout)

    def _get_cached_token(self) -> TokenResponse | None:
        """Get token from memory, then from the Django cache."""
        if self._token and not self._token.is_expired:
            return self._token

        if not self.config.use_token_cache:
            return None

        data = cache.get(self.token_cache_key)
        if data:
            self._token = TokenResponse.from_dict(data)
            return self._token
        return None

    def _auth_headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self._get_access_token()}"}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    # --- Document Operations ---

    def upload_document(
        self,
        xml_content: str,
        *,
        standard: str = "UBL",
        extern: bool = False,
        autofactura: bool = False,
        executare: bool = False,
    ) -> UploadResponse:
        """
        Upload document XML to ANAF.

        Args:
            xml_content: UBL 2.1 XML document as string
            standard: Document standard (UBL, CN for Credit Note, CII, RASP)
            extern: True if buyer is non-Romanian
            autofactura: True if self-invoicing
            executare: True when uploaded by an enforcement authority

        Returns:
            UploadResponse with upload_index for status tracking

        Raises:
            ValidationError: If arguments are invalid
            AuthenticationError: If not authenticated
            APIError: If ANAF rejects the request
        """
        return self._upload(UPLOAD_PATH, xml_content, standard, extern, autofactura, executare)

    def upload_b2c_document(
        self,
        xml_content: str,
        *,
        standard: str = "UBL",
        extern: bool = False,
        autofactura: bool = False,
        executare: bool = False,
    ) -> UploadResponse:
        """Upload a B2C document (buyer identified by CNP)."""
        return self._upload(UPLOAD_B2C_PATH, xml_content, standard, extern, autofactura, executare)

    def _upload(
        self,
        path: str,
        xml_content: str,
        standard: str,
        extern: bool,
        autofactura: bool,
        executare: bool,
    ) -> UploadResponse:
        self._validate_xml_content(xml_content)
        if standard not in UPLOAD_STANDARDS:
            raise ValidationError(f"Standard must be one of: {', '.join(UPLOAD_STANDARDS)}")

        params: dict[str, str] = {"standard": standard, "cif": self.config.cif}
        if extern:
            params["extern"] = "DA"
        if autofactura:
            params["autofactura"] = "DA"
        if executare:
            params["executare"] = "DA"

        response = self.http.post(
            path,
            params=params,
            data=xml_content.encode("utf-8"),
            headers=self._auth_headers(XML_CONTENT_TYPE),
        )
        result = parse_upload_response(response.content)

        if result.success:
            logger.info(f"e-Factura uploaded successfully: {result.upload_index}")
        else:
            logger.warning(f"e-Factura upload failed: {result.errors}")
        return result

    def get_upload_status(self, upload_id: str) -> StatusResponse:
        """
        Check status of uploaded document.

        Args:
            upload_id: The index_incarcare from upload response
        """
        if not upload_id or not str(upload_id).strip():
            raise ValidationError("Upload ID is required")

        response = self.http.get(
            STATUS_PATH,
            params={"id_incarcare": str(upload_id).strip()},
            headers=self._auth_headers(),
        )
        result = parse_status_response(response.content)
        logger.info(f"e-Factura status for {upload_id}: {result.state or result.errors}")
        return result

    def download_document(self, download_id: str) -> bytes:
        """
        Download processed e-Factura response.

        Returns:
            ZIP archive holding the signed document or the error report
        """
        if not download_id or not str(download_id).strip():
            raise ValidationError("Download ID is required")

        response = self.http.get(
            DOWNLOAD_PATH,
            params={"id": str(download_id).strip()},
            headers=self._auth_headers(),
        )
        logger.info(f"e-Factura response downloaded: {download_id}")
        return response.content

    # --- Message Listing ---

    def get_messages(self, days: int, filter: MessageFilter | str | None = None) -> ListMessagesResponse:  # noqa: A002
        """
        List messages from the last ``days`` days (1-60).

        Raises:
            APIError: If ANAF answers with an error payload
        """
        if not isinstance(days, int) or not MIN_MESSAGE_DAYS <= days <= MAX_MESSAGE_DAYS:
            raise ValidationError(f"Days parameter must be between {MIN_MESSAGE_DAYS} and {MAX_MESSAGE_DAYS}")

        params: dict[str, Any] = {"zile": days, "cif": self.config.cif}
        if filter:
            params["filtru"] = str(filter)

        data = self._get_json(LIST_MESSAGES_PATH, params)
        if is_error_response(data):
            raise APIError(extract_error_message(data) or "Error retrieving messages")
        return ListMessagesResponse.from_dict(data)

    def get_messages_paginated(
        self,
        start_time: int,
        end_time: int,
        page: int,
        filter: MessageFilter | str | None = None,  # noqa: A002
    ) -> PaginatedMessagesResponse:
        """
        List messages in a time window, one page at a time.

        Args:
            start_time: Window start, Unix epoch milliseconds
            end_time: Window end, Unix epoch milliseconds
            page: 1-based page number
        """
        if not isinstance(start_time, int) or start_time <= 0:
            raise ValidationError("Valid start time is required")
        if not isinstance(end_time, int) or end_time <= 0:
            raise ValidationError("Valid end time is required")
        if end_time <= start_time:
            raise ValidationError("End time must be after start time")
        if not isinstance(page, int) or page < 1:
            raise ValidationError("Page number must be 1 or greater")

        params: dict[str, Any] = {
            "startTime": start_time,
            "endTime": end_time,
            "cif": self.config.cif,
            "pagina": page,
        }
        if filter:
            params["filtru"] = str(filter)

        data = self._get_json(LIST_MESSAGES_PAGINATED_PATH, params)
        if is_error_response(data):
            raise APIError(extract_error_message(data) or "Error retrieving paginated messages")
        return PaginatedMessagesResponse.from_dict(data)

    def _get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        response = self.http.get(path, params=params, headers=self._auth_headers())
        data = parse_json_response(response.text)
        if not isinstance(data, dict):
            raise APIError(f"Unexpected response from {path}", status_code=response.status_code)
        return data

    # --- Validation and Conversion ---

    def validate_xml(self, xml_content: str, standard: str = "FACT1") -> XmlValidationResult:
        """
        Validate XML with the ANAF validator (always the production service).

        Args:
            standard: FACT1 for invoices, FCN for credit notes
        """
        self._validate_xml_content(xml_content)
        self._validate_document_standard(standard)

        response = self.http.post(
            self._production_url(f"{VALIDATE_PATH}/{standard}"),
            data=xml_content.encode("utf-8"),
            headers=self._auth_headers("text/plain"),
        )
        data = parse_json_response(response.text)
        if not isinstance(data, dict):
            raise APIError("Unexpected validation response", status_code=response.status_code)

        valid = data.get("stare") == "ok"
        details = join_validation_messages(data) or f"Validation {'passed' if valid else 'failed'}"
        return XmlValidationResult(
            valid=valid,
            details=details,
            info=f"Validation performed using {standard} standard (trace_id: {data.get('trace_id')})",
        )

    def validate_signature(
        self,
        xml_file: bytes | IO[bytes],
        signature_file: bytes | IO[bytes],
        xml_file_name: str = "factura.xml",
        signature_file_name: str = "semnatura.xml",
    ) -> XmlValidationResult:
        """Check the ANAF signature of a downloaded document."""
        if not xml_file:
            raise ValidationError("XML file is required")
        if not signature_file:
            raise ValidationError("Signature file is required")

        files = {
            "file": (xml_file_name, xml_file, "text/xml"),
            "signature": (signature_file_name, signature_file, "text/xml"),
        }
        response = self.http.post(ANAF_SIGNATURE_VALIDATION_URL, files=files, headers=self._auth_headers())
        data = parse_json_response(response.text)
        message = str(data.get("msg", "")) if isinstance(data, dict) else ""
        return XmlValidationResult(
            valid=SIGNATURE_VALID_MARKER in message and "NU" not in message,
            details=message,
        )

    def convert_xml_to_pdf(self, xml_content: str, standard: str = "FACT1", *, validate: bool = True) -> bytes:
        """
        Render an e-Factura XML as PDF (always the production service).

        With ``validate=False`` the document is rendered without ANAF
        validation.

        Raises:
            APIError: If ANAF answers with a JSON error instead of a PDF
        """
        self._validate_xml_content(xml_content)
        self._validate_document_standard(standard)

        path = f"{TRANSFORM_PATH}/{standard}"
        if not validate:
            path = f"{path}/DA"

        response = self.http.post(
            self._production_url(path),
            data=xml_content.encode("utf-8"),
            headers=self._auth_headers("text/plain"),
        )
        body = parse_response_body(response)
        if isinstance(body, (dict, list)):
            details = join_validation_messages(body) if isinstance(body, dict) else ""
            raise APIError(details or "PDF conversion failed", status_code=response.status_code)
        return response.content

    def convert_xml_to_pdf_no_validation(self, xml_content: str, standard: str = "FACT1") -> bytes:
        return self.convert_xml_to_pdf(xml_content, standard, validate=False)

    # --- Internal Methods ---

    @staticmethod
    def _production_url(path: str) -> str:
        return f"{EFacturaEnvironment.PRODUCTION.base_url}{path}"

    @staticmethod
    def _validate_xml_content(xml_content: str) -> None:
        if not xml_content or not xml_content.strip():
            raise ValidationError("XML content is required")

    @staticmethod
    def _validate_document_standard(standard: str) -> None:
        if standard not in DOCUMENT_STANDARDS:
            raise ValidationError("Document standard must be FACT1 or FCN")

