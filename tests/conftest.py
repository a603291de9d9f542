"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for rootdir-less collection
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from session_gateway.core.config import GoogleSettings, OAuthSettings


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def google_settings() -> GoogleSettings:
    return GoogleSettings(
        GOOGLE_CLIENT_ID="client",
        GOOGLE_CLIENT_SECRET="secret",
        GOOGLE_REDIRECT_URI="https://example.com/auth/callback",
    )


@pytest.fixture
def oauth_settings() -> OAuthSettings:
    return OAuthSettings(OAUTH_RETRY_ATTEMPTS=2, OAUTH_RETRY_BACKOFF=0.0)
