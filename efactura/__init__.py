"""
e-Factura library for Romanian ANAF compliance.

Generates CIUS-RO compliant UBL 2.1 invoices and talks to the ANAF
e-Factura API (National Agency for Fiscal Administration).

Features:
- UBL 2.1 Invoice XML generation with CIUS-RO customization
- Deterministic monetary rounding and VAT grouping
- County and Bucharest sector normalization for postal addresses
- CNP and VAT code validation
- OAuth2 authentication with automatic token refresh
- Upload, status, download, message listing, validation and PDF conversion
- Company lookup in the public ANAF VAT registry

Components:
- settings: Fixed ANAF constants and configurable settings
- types: Input data model (InvoiceInput, Party, Address, InvoiceLine)
- address: County / sector normalization
- tax: Line amounts and VAT grouping
- validators: Invoice input validation and identifier helpers
- xml_builder: UBL 2.1 XML generation
- http: HTTP transport with retries
- auth: ANAF OAuth2 flow
- responses: ANAF response parsing
- client: ANAF e-Factura API client
- details: Public company registry client
"""

# Data model
from .types import Address, InvoiceInput, InvoiceLine, InvoiceTypeCode, Party, TaxGroup

# Errors
from .exceptions import (
    APIError,
    AuthenticationError,
    EFacturaError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ValidationError,
    XMLParsingError,
)

# XML generation
from .xml_builder import UBLInvoiceBuilder, build_invoice_xml

# Address and tax helpers
from .address import is_bucharest, sanitize_bucharest_sector, sanitize_county
from .tax import calculate_line_extension, group_lines_by_tax, round_amount

# Validation
from .validators import (
    CNPValidationResult,
    CNPValidator,
    extract_cui_number,
    is_valid_cnp,
    is_valid_vat_code,
    normalize_vat_number,
    validate_invoice_input,
)

# Settings and configuration
from .settings import (
    CIUS_RO_CUSTOMIZATION_ID,
    CIUS_RO_VERSION,
    ROMANIA_TIMEZONE,
    UBL_NAMESPACES,
    EFacturaEnvironment,
    EFacturaSettingKeys,
    EFacturaSettings,
    VATCategory,
    efactura_settings,
)

# API clients
from .auth import (
    AnafAuthenticator,
    AuthConfig,
    TokenResponse,
    decode_oauth_state,
    encode_oauth_state,
    extract_oauth_code,
    extract_oauth_error,
)
from .client import EFacturaClient, EFacturaConfig
from .details import AnafDetailsClient, CompanyData, CompanyLookupResult
from .http import HttpClient
from .responses import (
    ExecutionStatus,
    ListMessagesResponse,
    MessageFilter,
    MessageInfo,
    PaginatedMessagesResponse,
    StatusResponse,
    UploadResponse,
    UploadState,
    XmlValidationResult,
    parse_status_response,
    parse_upload_response,
)

__all__ = [
    # Data model
    "Address",
    "InvoiceInput",
    "InvoiceLine",
    "InvoiceTypeCode",
    "Party",
    "TaxGroup",
    # Errors
    "APIError",
    "AuthenticationError",
    "EFacturaError",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "ValidationError",
    "XMLParsingError",
    # XML generation
    "UBLInvoiceBuilder",
    "build_invoice_xml",
    # Address and tax helpers
    "calculate_line_extension",
    "group_lines_by_tax",
    "is_bucharest",
    "round_amount",
    "sanitize_bucharest_sector",
    "sanitize_county",
    # Validation
    "CNPValidationResult",
    "CNPValidator",
    "extract_cui_number",
    "is_valid_cnp",
    "is_valid_vat_code",
    "normalize_vat_number",
    "validate_invoice_input",
    # Settings
    "CIUS_RO_CUSTOMIZATION_ID",
    "CIUS_RO_VERSION",
    "ROMANIA_TIMEZONE",
    "UBL_NAMESPACES",
    "EFacturaEnvironment",
    "EFacturaSettingKeys",
    "EFacturaSettings",
    "VATCategory",
    "efactura_settings",
    # API clients
    "AnafAuthenticator",
    "AnafDetailsClient",
    "AuthConfig",
    "CompanyData",
    "CompanyLookupResult",
    "EFacturaClient",
    "EFacturaConfig",
    "HttpClient",
    "TokenResponse",
    "decode_oauth_state",
    "encode_oauth_state",
    "extract_oauth_code",
    "extract_oauth_error",
    # Responses
    "ExecutionStatus",
    "ListMessagesResponse",
    "MessageFilter",
    "MessageInfo",
    "PaginatedMessagesResponse",
    "StatusResponse",
    "UploadResponse",
    "UploadState",
    "XmlValidationResult",
    "parse_status_response",
    "parse_upload_response",
]
