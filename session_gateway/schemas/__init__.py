"""Pydantic schemas used across the API and provider clients."""

from .auth import IdentityClaims, RefreshedToken, TokenSet

__all__ = [
    "IdentityClaims",
    "RefreshedToken",
    "TokenSet",
]
