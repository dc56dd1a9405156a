"""
ANAF OAuth2 authentication.

ANAF issues tokens through a certificate-based authorization code flow:
the user opens the authorization URL in a browser holding their digital
certificate, ANAF redirects back with ``?code=...``, and the code is
exchanged for an access/refresh token pair. Access tokens are JWTs; the
refresh token is long lived and is what a server keeps configured.

Reference:
- https://static.anaf.ro/static/10/Anaf/Informatii_R/API/Oauth_procedura_inregistrare_aplicatii_portal_ANAF.pdf
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

from django.utils import timezone

from .exceptions import AuthenticationError, EFacturaError, ValidationError
from .http import HttpClient
from .settings import ANAF_OAUTH_AUTHORIZE_URL, ANAF_OAUTH_TOKEN_URL, TOKEN_EXPIRY_BUFFER_SECONDS, efactura_settings

logger = logging.getLogger(__name__)

TOKEN_CONTENT_TYPE_JWT = "jwt"  # noqa: S105
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


@dataclass
class AuthConfig:
    """OAuth2 application credentials registered with ANAF."""

    client_id: str
    client_secret: str
    redirect_uri: str
    timeout: int = 30

    @classmethod
    def from_settings(cls) -> AuthConfig:
        """Create config from Django settings."""
        return cls(
            client_id=efactura_settings.client_id,
            client_secret=efactura_settings.client_secret,
            redirect_uri=efactura_settings.redirect_uri,
            timeout=efactura_settings.api_timeout,
        )

    def validate(self) -> None:
        if not self.client_id or not self.client_id.strip():
            raise ValidationError("OAuth client ID is required")
        if not self.client_secret or not self.client_secret.strip():
            raise ValidationError("OAuth client secret is required")
        if not self.redirect_uri or not self.redirect_uri.strip():
            raise ValidationError("OAuth redirect URI is required")


@dataclass
class TokenResponse:
    """OAuth2 token response."""

    access_token: str
    token_type: str = "Bearer"  # noqa: S105
    expires_in: int = DEFAULT_TOKEN_LIFETIME_SECONDS
    refresh_token: str = ""
    scope: str = ""
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.expires_at is None:
            self.expires_at = timezone.now() + timedelta(seconds=self.expires_in)

    @property
    def is_expired(self) -> bool:
        """True once the token is within the safety buffer of its expiry."""
        return timezone.now() >= self.expires_at - timedelta(seconds=TOKEN_EXPIRY_BUFFER_SECONDS)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenResponse:
        expires_at = data.get("expires_at")
        if isinstance(expires_at, str):
            expires_at = datetime.fromisoformat(expires_at)
        return cls(
            access_token=data.get("access_token", ""),
            token_type=data.get("token_type", "Bearer"),
            expires_in=int(data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS),
            refresh_token=data.get("refresh_token", "") or "",
            scope=data.get("scope", "") or "",
            expires_at=expires_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "refresh_token": self.refresh_token,
            "scope": self.scope,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


# ===============================================================================
# OAUTH HELPERS
# ===============================================================================


def encode_oauth_state(state: dict[str, Any]) -> str:
    """Encode OAuth state as base64 JSON for safe transport in a query string."""
    return base64.b64encode(json.dumps(state).encode("utf-8")).decode("ascii")


def decode_oauth_state(encoded_state: str) -> dict[str, Any]:
    """
    Decode a state value produced by encode_oauth_state.

    Raises:
        ValidationError: if the value is not base64 encoded JSON
    """
    try:
        return json.loads(base64.b64decode(encoded_state.encode("ascii"), validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise ValidationError(f"Invalid OAuth state: {e}") from e


def _query_param(redirect_url: str, name: str) -> str | None:
    values = parse_qs(urlparse(redirect_url).query).get(name)
    return values[0] if values else None


def extract_oauth_code(redirect_url: str) -> str | None:
    """Authorization code from the redirect URL, or None."""
    return _query_param(redirect_url, "code")


def extract_oauth_error(redirect_url: str) -> dict[str, str] | None:
    """``{"error": ..., "error_description": ...}`` from the redirect URL, or None."""
    error = _query_param(redirect_url, "error")
    if not error:
        return None
    result = {"error": error}
    description = _query_param(redirect_url, "error_description")
    if description:
        result["error_description"] = description
    return result


# ===============================================================================
# AUTHENTICATOR
# ===============================================================================


class AnafAuthenticator:
    """
    OAuth2 client for the ANAF identity provider.

    Usage:
        auth = AnafAuthenticator(AuthConfig.from_settings())
        url = auth.get_authorization_url(state={"tenant": 42})
        # ... user authorizes, ANAF redirects back ...
        token = auth.exchange_code_for_token(extract_oauth_code(callback_url))
    """

    def __init__(self, config: AuthConfig | None = None, http: HttpClient | None = None):
        self.config = config or AuthConfig.from_settings()
        self.config.validate()
        # Token endpoint calls are not retried; a failed exchange is final
        self.http = http or HttpClient(timeout=self.config.timeout, max_retries=1)

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> AnafAuthenticator:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def get_authorization_url(self, scope: str | None = None, state: dict[str, Any] | None = None) -> str:
        """
        Generate OAuth2 authorization URL for user consent.

        Note: ANAF OAuth2 requires certificate-based authentication.
        The user must have their digital certificate installed in browser.
        """
        params = {
            "client_id": self.config.client_id,
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri,
            "token_content_type": TOKEN_CONTENT_TYPE_JWT,
        }
        if scope:
            params["scope"] = scope
        if state:
            params["state"] = encode_oauth_state(state)
        return f"{ANAF_OAUTH_AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code_for_token(self, code: str) -> TokenResponse:
        """
        Exchange authorization code for access token.

        Raises:
            ValidationError: If the code is empty
            AuthenticationError: If token exchange fails
        """
        if not code or not code.strip():
            raise ValidationError("Authorization code is required")

        token = self._request_token({"grant_type": "authorization_code", "code": code}, "exchange code for token")
        logger.info("ANAF authorization code exchanged for tokens")
        return token

    def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """
        Refresh expired access token.

        Raises:
            ValidationError: If the refresh token is empty
            AuthenticationError: If refresh fails
        """
        if not refresh_token or not refresh_token.strip():
            raise ValidationError("Refresh token is required")

        token = self._request_token(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}, "refresh access token"
        )
        logger.info("ANAF access token refreshed")
        return token

    def _request_token(self, grant: dict[str, str], action: str) -> TokenResponse:
        data = {
            **grant,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "redirect_uri": self.config.redirect_uri,
            "token_content_type": TOKEN_CONTENT_TYPE_JWT,
        }

        try:
            response = self.http.post(
                ANAF_OAUTH_TOKEN_URL,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            payload = response.json()
        except (EFacturaError, ValueError) as e:
            logger.error(f"Failed to {action}: {e}")
            raise AuthenticationError(f"Failed to {action}") from e

        if not isinstance(payload, dict) or not payload.get("access_token"):
            logger.error(f"Failed to {action}: token response missing access token")
            raise AuthenticationError(f"Failed to {action}: token response missing access token")

        return TokenResponse.from_dict(payload)
