"""
Google OAuth utilities.

Every outbound call to the identity provider goes through
``GoogleOAuthClient``: authorization URL construction, code exchange, ID token
verification and access token refresh. Failures are reported with one
exception type per operation whose ``reason`` tells a network failure apart
from a malformed payload or a rejected grant.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Type
from urllib.parse import urlencode

import httpx
from fastapi import status
from pydantic import ValidationError

from session_gateway.core.config import GoogleSettings, OAuthSettings
from session_gateway.schemas.auth import IdentityClaims, RefreshedToken, TokenSet
from session_gateway.utils.http import RetryConfig, request_with_retry

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Base class for identity provider failures."""


class NetworkError(ProviderError):
    """The provider could not be reached or did not answer in time."""


class MalformedResponseError(ProviderError):
    """The provider answered with a non-JSON body or missing fields."""


class AuthorizationDenied(ProviderError):
    """The provider rejected the grant (reused code, revoked refresh token)."""


class _OperationError(ProviderError):
    @property
    def reason(self) -> Optional[Type[ProviderError]]:
        """The failure kind recorded as this error's cause."""
        cause = self.__cause__
        if isinstance(cause, ProviderError):
            return type(cause)
        return None


class ExchangeError(_OperationError):
    """Raised when the authorization code could not be exchanged."""


class IdentityVerificationError(_OperationError):
    """Raised when the ID token could not be verified."""


class RefreshError(_OperationError):
    """Raised when the access token could not be refreshed."""


class GoogleOAuthClient:
    """Build Google authorization URLs and call the token endpoints."""

    def __init__(
        self,
        google_settings: GoogleSettings,
        oauth_settings: OAuthSettings,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._google = google_settings
        self._oauth = oauth_settings
        self._http = http_client or httpx.AsyncClient(
            timeout=oauth_settings.request_timeout_seconds
        )
        self._retry = RetryConfig(
            attempts=oauth_settings.retry_attempts,
            backoff_seconds=oauth_settings.retry_backoff_seconds,
            deadline_seconds=oauth_settings.request_timeout_seconds,
        )

    def build_authorization_url(
        self, state: Optional[str] = None, access_type: str = "offline"
    ) -> str:
        """Construct the Google OAuth consent URL."""
        params = {
            "client_id": self._google.client_id,
            "redirect_uri": str(self._google.redirect_uri),
            "response_type": "code",
            "scope": " ".join(self._oauth.scopes),
            "access_type": access_type,
            "include_granted_scopes": "true",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{self._google.authorization_endpoint}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> TokenSet:
        """Exchange an authorization code for an access, refresh and ID token."""
        payload = {
            "code": code,
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "redirect_uri": str(self._google.redirect_uri),
            "grant_type": "authorization_code",
        }
        try:
            body = await self._call_json("POST", self._google.token_endpoint, data=payload)
            return TokenSet.model_validate(body)
        except ValidationError as exc:
            raise ExchangeError("Incomplete token payload returned from Google.") from (
                MalformedResponseError(str(exc))
            )
        except ProviderError as exc:
            raise ExchangeError("Failed to exchange authorization code.") from exc

    async def verify_identity(self, id_token: str) -> IdentityClaims:
        """Validate an ID token with the tokeninfo endpoint and return its claims."""
        try:
            body = await self._call_json(
                "GET", self._google.tokeninfo_endpoint, params={"id_token": id_token}
            )
            claims = IdentityClaims.model_validate(body)
        except ValidationError as exc:
            raise IdentityVerificationError("ID token claims are incomplete.") from (
                MalformedResponseError(str(exc))
            )
        except ProviderError as exc:
            raise IdentityVerificationError("Failed to verify ID token.") from exc

        if claims.audience is not None and claims.audience != self._google.client_id:
            raise IdentityVerificationError("ID token was issued for another client.") from (
                AuthorizationDenied(f"unexpected audience {claims.audience!r}")
            )
        return claims

    async def refresh_access_token(self, refresh_token: str) -> RefreshedToken:
        """Refresh the access token using a stored refresh token.

        Google does not rotate refresh tokens on this grant; any refresh token
        present in the response is ignored.
        """
        payload = {
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            body = await self._call_json("POST", self._google.token_endpoint, data=payload)
            return RefreshedToken.model_validate(body)
        except ValidationError as exc:
            raise RefreshError("Incomplete refresh payload returned from Google.") from (
                MalformedResponseError(str(exc))
            )
        except ProviderError as exc:
            raise RefreshError("Failed to refresh access token.") from exc

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _call_json(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await request_with_retry(
                self._http.request, method, url, retry_config=self._retry, **kwargs
            )
        except (httpx.TransportError, asyncio.TimeoutError) as exc:
            logger.warning("Google endpoint %s unreachable: %s", url, exc.__class__.__name__)
            raise NetworkError(f"{method} {url} failed: {exc.__class__.__name__}") from exc

        if response.status_code in (status.HTTP_400_BAD_REQUEST, status.HTTP_401_UNAUTHORIZED):
            logger.info("Google rejected %s %s with %s", method, url, response.status_code)
            raise AuthorizationDenied(_error_description(response))
        if response.status_code != status.HTTP_200_OK:
            raise NetworkError(
                f"{method} {url} returned {response.status_code}: {_error_description(response)}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponseError("Provider response is not JSON.") from exc
        if not isinstance(body, dict):
            raise MalformedResponseError("Provider response is not a JSON object.")
        return body


def _error_description(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error_description") or body.get("error") or body)
    return str(body)


__all__ = [
    "AuthorizationDenied",
    "ExchangeError",
    "GoogleOAuthClient",
    "IdentityVerificationError",
    "MalformedResponseError",
    "NetworkError",
    "ProviderError",
    "RefreshError",
]
