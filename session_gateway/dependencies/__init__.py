"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_google_oauth_client,
    get_http_client,
    get_login_service,
    get_oauth_state_encoder,
    get_session_cookie_encoder,
    get_session_store,
    get_token_cipher_service,
    get_token_lifecycle_manager,
    get_user_repository,
)
from .config import get_app_settings

__all__ = [
    "get_app_settings",
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
