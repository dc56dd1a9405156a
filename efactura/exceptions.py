"""
Exception hierarchy for the e-Factura library.

Every error raised by this package derives from EFacturaError, so callers
can catch one base class or react to the specific failure.
"""

from __future__ import annotations


class EFacturaError(Exception):
    """Base exception for e-Factura errors."""


class ValidationError(EFacturaError):
    """Input data is missing or malformed."""


class AuthenticationError(EFacturaError):
    """OAuth flow failed or ANAF rejected the credentials."""


class APIError(EFacturaError):
    """ANAF returned an error response."""

    def __init__(self, message: str, status_code: int | None = None, response_text: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class NotFoundError(APIError):
    """Requested resource does not exist (HTTP 404)."""

    def __init__(self, message: str = "Resource not found", response_text: str = ""):
        super().__init__(message, status_code=404, response_text=response_text)


class NetworkError(APIError):
    """Timeout or connection failure after all retries."""


class XMLParsingError(APIError):
    """Response body could not be parsed."""

    def __init__(self, message: str, raw: str | bytes = ""):
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        super().__init__(message, response_text=text)
        self.raw = raw


class RateLimitError(APIError):
    """ANAF kept answering HTTP 429 until retries ran out."""

    def __init__(self, message: str, retry_after: int | None = None, response_text: str = ""):
        super().__init__(message, status_code=429, response_text=response_text)
        self.retry_after = retry_after
