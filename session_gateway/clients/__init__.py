"""Expose constructed client wrappers."""

from .google_auth import (
    AuthorizationDenied,
    ExchangeError,
    GoogleOAuthClient,
    IdentityVerificationError,
    MalformedResponseError,
    NetworkError,
    ProviderError,
    RefreshError,
)
from .session_store import InMemorySessionStore, SessionStore, SQLiteSessionStore
from .user_store import (
    InMemoryUserRepository,
    RecordNotFoundError,
    RepositoryError,
    SQLiteUserRepository,
    UserRepository,
)

__all__ = [
    "AuthorizationDenied",
    "ExchangeError",
    "GoogleOAuthClient",
    "IdentityVerificationError",
    "InMemorySessionStore",
    "InMemoryUserRepository",
    "MalformedResponseError",
    "NetworkError",
    "ProviderError",
    "RecordNotFoundError",
    "RefreshError",
    "RepositoryError",
    "SQLiteSessionStore",
    "SQLiteUserRepository",
    "SessionStore",
    "UserRepository",
]
