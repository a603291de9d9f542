"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the token lifecycle and
the maintenance scripts share one validated configuration surface. Required
values are validated when ``AppSettings`` is constructed, so a missing client
secret or session secret stops the process at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

import os

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class GoogleSettings(BaseSettings):
    """Configuration required for talking to the Google identity provider."""

    client_id: str = Field(..., validation_alias="GOOGLE_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="GOOGLE_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="GOOGLE_REDIRECT_URI")
    authorization_endpoint: str = Field(
        "https://accounts.google.com/o/oauth2/v2/auth",
        validation_alias="GOOGLE_AUTHORIZATION_ENDPOINT",
    )
    token_endpoint: str = Field(
        "https://oauth2.googleapis.com/token",
        validation_alias="GOOGLE_TOKEN_ENDPOINT",
    )
    tokeninfo_endpoint: str = Field(
        "https://oauth2.googleapis.com/tokeninfo",
        validation_alias="GOOGLE_TOKENINFO_ENDPOINT",
    )
    data_api_url: str = Field(
        "https://www.googleapis.com/oauth2/v3/userinfo",
        validation_alias="GOOGLE_DATA_API_URL",
        description="Provider API proxied by /api/data with the user's token.",
    )


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        ("openid", "profile", "email"),
        validation_alias="OAUTH_SCOPES",
    )
    request_timeout_seconds: float = Field(10.0, validation_alias="OAUTH_REQUEST_TIMEOUT")
    retry_attempts: int = Field(
        3,
        validation_alias="OAUTH_RETRY_ATTEMPTS",
        description="Attempts for transient transport failures; HTTP errors are never retried.",
    )
    retry_backoff_seconds: float = Field(0.5, validation_alias="OAUTH_RETRY_BACKOFF")
    refresh_token_lifetime_days: int = Field(
        365,
        validation_alias="REFRESH_TOKEN_LIFETIME_DAYS",
        description="Informational lifetime recorded alongside the refresh token.",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma or space separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope for scope in value.replace(",", " ").split() if scope)

    @field_validator("retry_attempts")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        if value < 1:
            raise ValueError("OAUTH_RETRY_ATTEMPTS must be at least 1")
        return value


class SessionSettings(BaseSettings):
    """Session cookie and session store configuration."""

    secret: str = Field(..., min_length=8, validation_alias="SESSION_SECRET")
    cookie_name: str = Field("gateway_session", validation_alias="SESSION_COOKIE_NAME")
    ttl_seconds: int = Field(86400, validation_alias="SESSION_TTL")
    https_only: bool = Field(False, validation_alias="SESSION_HTTPS_ONLY")
    backend: str = Field(
        "memory",
        validation_alias="SESSION_BACKEND",
        description="Either 'memory' or 'sqlite' (shares DATABASE_URL).",
    )

    @field_validator("backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"memory", "sqlite"}:
            raise ValueError("SESSION_BACKEND must be 'memory' or 'sqlite'")
        return normalized


class StorageSettings(BaseSettings):
    """Persistent identity record storage."""

    database_url: str = Field(..., validation_alias="DATABASE_URL")
    operation_timeout_seconds: float = Field(5.0, validation_alias="REPOSITORY_TIMEOUT")

    @field_validator("database_url")
    @classmethod
    def _sqlite_only(cls, value: str) -> str:
        if not value.startswith("sqlite://"):
            raise ValueError("DATABASE_URL must use the sqlite:// scheme")
        return value

    @property
    def sqlite_path(self) -> str:
        """Filesystem path (or ``:memory:``) encoded in the connection string."""
        path = self.database_url[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:]
        return path or ":memory:"


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    previous_token_encryption_secrets: Annotated[tuple[str, ...], NoDecode] = Field(
        (),
        validation_alias="PREVIOUS_TOKEN_ENCRYPTION_SECRETS",
        description="Retired secrets still accepted for decryption during rotation.",
    )

    @field_validator("previous_token_encryption_secrets", mode="before")
    @classmethod
    def _split_secrets(cls, value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
        if isinstance(value, (tuple, list)):
            return tuple(value)
        return tuple(secret.strip() for secret in value.split(",") if secret.strip())


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    landing_path: str = Field(
        "/profile",
        validation_alias="LANDING_PATH",
        description="Route the browser lands on after a successful login.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "GoogleSettings",
    "OAuthSettings",
    "SecuritySettings",
    "SessionSettings",
    "StorageSettings",
    "get_settings",
]
