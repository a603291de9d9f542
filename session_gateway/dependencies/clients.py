"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache
from typing import Annotated

import httpx
from fastapi import Depends

from session_gateway.clients import (
    GoogleOAuthClient,
    InMemorySessionStore,
    SessionStore,
    SQLiteSessionStore,
    SQLiteUserRepository,
    UserRepository,
)
from session_gateway.core.config import AppSettings, get_settings
from session_gateway.core.token_cipher import TokenCipherService
from session_gateway.services import LoginService, TokenLifecycleManager
from session_gateway.utils.signing import SignedPayloadEncoder

from .config import get_app_settings


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_http_client() -> httpx.AsyncClient:
    """Shared outbound HTTP client, closed on application shutdown."""
    settings = _settings()
    return httpx.AsyncClient(timeout=settings.oauth.request_timeout_seconds)


@lru_cache()
def get_oauth_state_encoder() -> SignedPayloadEncoder:
    """Provide an OAuth state encoder derived from the session secret."""
    settings = _settings()
    return SignedPayloadEncoder(secret_key=settings.session.secret, salt="oauth-state")


@lru_cache()
def get_session_cookie_encoder() -> SignedPayloadEncoder:
    """Provide the signer for session identifier cookies."""
    settings = _settings()
    return SignedPayloadEncoder(secret_key=settings.session.secret, salt="session")


@lru_cache()
def get_google_oauth_client() -> GoogleOAuthClient:
    """Create a singleton Google OAuth client."""
    settings = _settings()
    return GoogleOAuthClient(settings.google, settings.oauth, http_client=get_http_client())


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.google.client_secret
    return TokenCipherService(
        secret=secret,
        previous_secrets=settings.security.previous_token_encryption_secrets,
    )


@lru_cache()
def get_user_repository() -> UserRepository:
    """Provide the durable identity record store."""
    settings = _settings()
    return SQLiteUserRepository(
        settings.storage.sqlite_path,
        token_cipher=get_token_cipher_service(),
        timeout_seconds=settings.storage.operation_timeout_seconds,
    )


@lru_cache()
def get_session_store() -> SessionStore:
    """Provide the session snapshot store selected by SESSION_BACKEND."""
    settings = _settings()
    if settings.session.backend == "sqlite":
        return SQLiteSessionStore(
            settings.storage.sqlite_path,
            settings.session.ttl_seconds,
            token_cipher=get_token_cipher_service(),
        )
    return InMemorySessionStore(settings.session.ttl_seconds)


def get_token_lifecycle_manager(
    oauth_client: Annotated[GoogleOAuthClient, Depends(get_google_oauth_client)],
    repository: Annotated[UserRepository, Depends(get_user_repository)],
    session_store: Annotated[SessionStore, Depends(get_session_store)],
) -> TokenLifecycleManager:
    """Build the authentication gate around the shared clients."""
    return TokenLifecycleManager(
        oauth_client=oauth_client,
        repository=repository,
        session_store=session_store,
    )


def get_login_service(
    oauth_client: Annotated[GoogleOAuthClient, Depends(get_google_oauth_client)],
    repository: Annotated[UserRepository, Depends(get_user_repository)],
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> LoginService:
    """Build the authorization code login flow."""
    return LoginService(
        oauth_client=oauth_client,
        repository=repository,
        session_store=session_store,
        oauth_settings=settings.oauth,
    )


__all__ = [
    "get_google_oauth_client",
    "get_http_client",
    "get_login_service",
    "get_oauth_state_encoder",
    "get_session_cookie_encoder",
    "get_session_store",
    "get_token_cipher_service",
    "get_token_lifecycle_manager",
    "get_user_repository",
]
