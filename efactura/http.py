"""
HTTP transport for ANAF services.

Thin wrapper over a requests.Session that adds base URL joining, a
default timeout, retries with exponential backoff on timeouts and
connection errors, Retry-After handling on HTTP 429, and translation of
error statuses to the package exceptions.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from .exceptions import (
    APIError,
    AuthenticationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)

logger = logging.getLogger(__name__)

USER_AGENT = "anaf-efactura/1.0"
DEFAULT_RETRY_AFTER_SECONDS = 60
MAX_ERROR_TEXT_LENGTH = 500

BINARY_CONTENT_TYPES = (
    "application/pdf",
    "application/octet-stream",
    "application/zip",
    "application/x-zip-compressed",
)


def raise_for_status(response: requests.Response) -> None:
    """
    Map an unsuccessful response to the matching exception.

    401/403 -> AuthenticationError, 404 -> NotFoundError, other 4xx ->
    ValidationError, anything else -> APIError.
    """
    status = response.status_code
    if status < 400:
        return

    error_text = (response.text or "")[:MAX_ERROR_TEXT_LENGTH]
    message = f"HTTP {status}: {response.reason or ''}".rstrip()
    if error_text:
        message = f"{message} - {error_text}"

    if status in (401, 403):
        raise AuthenticationError(message)
    if status == 404:
        raise NotFoundError(message, response_text=error_text)
    if 400 <= status < 500:
        raise ValidationError(message)
    raise APIError(message, status_code=status, response_text=error_text)


def parse_response_body(response: requests.Response) -> Any:
    """Return bytes for binary payloads, decoded JSON for JSON, text otherwise."""
    content_type = response.headers.get("Content-Type", "").lower()
    if any(binary in content_type for binary in BINARY_CONTENT_TYPES):
        return response.content
    if "application/json" in content_type:
        return response.json()
    return response.text


class HttpClient:
    """
    Session-backed HTTP client with retry logic.

    Usage:
        with HttpClient(base_url="https://api.anaf.ro/test/FCTEL/rest") as http:
            response = http.get("/stareMesaj", params={"id_incarcare": "123"})
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: int | float = 30,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Get or create HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(
                {
                    "Accept": "application/json, application/xml, */*",
                    "User-Agent": USER_AGENT,
                }
            )
        return self._session

    def close(self) -> None:
        """Close HTTP session."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def build_url(self, url: str) -> str:
        """Join a relative path onto the base URL; absolute URLs pass through."""
        if url.startswith(("http://", "https://")) or not self.base_url:
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", url, **kwargs)

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """
        Make HTTP request with retry logic.

        Raises:
            AuthenticationError, NotFoundError, ValidationError, APIError:
                for error statuses
            RateLimitError: when every attempt was rate limited
            NetworkError: when every attempt timed out or failed to connect
        """
        full_url = self.build_url(url)
        kwargs.setdefault("timeout", self.timeout)
        last_error: Exception | None = None
        retry_after: int | None = None
        rate_limited = False

        for attempt in range(self.max_retries):
            try:
                response = self.session.request(method, full_url, **kwargs)
            except requests.Timeout as e:
                last_error = e
                rate_limited = False
                logger.warning(f"Request timeout for {method} {full_url} (attempt {attempt + 1}/{self.max_retries})")
            except requests.ConnectionError as e:
                last_error = e
                rate_limited = False
                logger.warning(f"Connection error for {method} {full_url} (attempt {attempt + 1}/{self.max_retries})")
            except requests.RequestException as e:
                logger.error(f"Request failed for {method} {full_url}: {e}")
                raise NetworkError(f"Network error: {e}") from e
            else:
                # Check for rate limiting
                if response.status_code == 429:
                    retry_after = self._retry_after(response)
                    rate_limited = True
                    logger.warning(f"Rate limited by ANAF, waiting {retry_after}s")
                    if attempt < self.max_retries - 1:
                        time.sleep(retry_after)
                    continue

                raise_for_status(response)
                return response

            # Wait before retry (exponential backoff)
            if attempt < self.max_retries - 1:
                delay = self.retry_delay * (2**attempt)
                time.sleep(delay)

        if rate_limited:
            raise RateLimitError(f"Rate limit exceeded after {self.max_retries} attempts", retry_after=retry_after)

        if isinstance(last_error, requests.Timeout):
            raise NetworkError(f"Request timeout after {self.max_retries} attempts") from last_error
        raise NetworkError(f"Request failed after {self.max_retries} attempts: {last_error}") from last_error

    @staticmethod
    def _retry_after(response: requests.Response) -> int:
        value = response.headers.get("Retry-After", DEFAULT_RETRY_AFTER_SECONDS)
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return DEFAULT_RETRY_AFTER_SECONDS
