"""
Route guard placing the token lifecycle gate in front of protected handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Optional

from fastapi import Depends, HTTPException, Request, Response
from google.oauth2.credentials import Credentials

from session_gateway.core.config import AppSettings
from session_gateway.dependencies import (
    get_app_settings,
    get_session_cookie_encoder,
    get_token_lifecycle_manager,
)
from session_gateway.services.token_lifecycle import AuthState, TokenLifecycleManager
from session_gateway.utils.signing import InvalidSignatureError, SignedPayloadEncoder


@dataclass(frozen=True)
class AccessContext:
    """The credential a protected handler may use on the user's behalf."""

    subject_id: str
    access_token: str
    expires_at: datetime

    def credentials(self) -> Credentials:
        """Wrap the access token for Google client libraries."""
        # google-auth compares expiry against a naive UTC clock.
        expiry = self.expires_at.astimezone(timezone.utc).replace(tzinfo=None)
        return Credentials(token=self.access_token, expiry=expiry)


def read_session_id(
    request: Request, encoder: SignedPayloadEncoder, settings: AppSettings
) -> Optional[str]:
    """Return the session id carried by the signed cookie, if it is genuine."""
    raw = request.cookies.get(settings.session.cookie_name)
    if not raw:
        return None
    try:
        payload = encoder.decode(
            raw, max_age=timedelta(seconds=settings.session.ttl_seconds)
        )
    except InvalidSignatureError:
        return None
    session_id = payload.get("sid")
    return session_id if isinstance(session_id, str) else None


def write_session_cookie(
    response: Response,
    session_id: str,
    encoder: SignedPayloadEncoder,
    settings: AppSettings,
) -> None:
    response.set_cookie(
        key=settings.session.cookie_name,
        value=encoder.encode({"sid": session_id}),
        max_age=settings.session.ttl_seconds,
        httponly=True,
        secure=settings.session.https_only,
        samesite="lax",
    )


def clear_session_cookie(response: Response, settings: AppSettings) -> None:
    response.delete_cookie(key=settings.session.cookie_name)


async def require_access(
    request: Request,
    response: Response,
    manager: Annotated[TokenLifecycleManager, Depends(get_token_lifecycle_manager)],
    encoder: Annotated[Any, Depends(get_session_cookie_encoder)],
    settings: Annotated[Any, Depends(get_app_settings)],
) -> AccessContext:
    """Only let the request through once the gate reaches the valid state.

    A refresh extends the server-side session, so the cookie is reissued with
    a fresh signature and lifetime to match.
    """
    session_id = read_session_id(request, encoder, settings)
    result = await manager.authenticate(session_id)
    if not result.ok or result.snapshot is None:
        raise HTTPException(status_code=result.status_code, detail=result.detail)

    record = result.snapshot.record
    access = AccessContext(
        subject_id=record.subject_id,
        access_token=record.access_token,
        expires_at=record.access_token_expires_at,
    )
    if AuthState.REFRESHING in result.path:
        write_session_cookie(response, result.snapshot.session_id, encoder, settings)
    request.state.access = access
    return access


AuthenticatedRouteGuard = Depends(require_access)

__all__ = [
    "AccessContext",
    "AuthenticatedRouteGuard",
    "clear_session_cookie",
    "read_session_id",
    "require_access",
    "write_session_cookie",
]
