"""Schemas describing provider payloads exchanged during OAuth flows."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TokenSet(BaseModel):
    """Credentials returned by the ``authorization_code`` grant."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    expires_in: int = Field(..., gt=0)
    id_token: str = Field(..., min_length=1)
    scope: Optional[str] = None
    token_type: str = "Bearer"


class RefreshedToken(BaseModel):
    """Credentials returned by the ``refresh_token`` grant."""

    access_token: str = Field(..., min_length=1)
    expires_in: int = Field(..., gt=0)


class IdentityClaims(BaseModel):
    """Verified claims extracted from an ID token."""

    subject_id: str = Field(..., min_length=1, alias="sub")
    name: str = ""
    email: str = ""
    email_verified: bool = False
    audience: Optional[str] = Field(None, alias="aud")

    model_config = {"populate_by_name": True}


__all__ = ["IdentityClaims", "RefreshedToken", "TokenSet"]
