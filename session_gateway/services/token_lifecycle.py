"""
Per-request authentication gate that keeps access tokens fresh.

``TokenLifecycleManager.authenticate`` walks a small state machine on every
request:

* ``UNAUTHENTICATED``: no session snapshot, respond 401.
* ``VALID``: the snapshot's access token has not expired, no outbound call.
* ``EXPIRED`` -> ``REFRESHING``: trade the refresh token for a new access
  token, persist it and replace the session with the repository's record.
  A session deleted while the refresh was in flight stays deleted and the
  request ends ``UNAUTHENTICATED``.
* ``FAILED``: the refresh could not complete, respond 500 and leave the
  session untouched so the next request tries again.

Nothing is cached between requests beyond what the session store and the
repository hold. Concurrent refreshes for the same subject are not
serialized; the repository resolves them last-writer-wins and every token the
provider issued stays individually valid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from http import HTTPStatus
from typing import Callable, Optional, Tuple

from session_gateway.clients.google_auth import GoogleOAuthClient, RefreshError
from session_gateway.clients.session_store import SessionStore
from session_gateway.clients.user_store import RepositoryError, UserRepository
from session_gateway.models.identity import IdentityUpdate, SessionSnapshot

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    VALID = "valid"
    EXPIRED = "expired"
    REFRESHING = "refreshing"
    FAILED = "failed"


@dataclass(frozen=True)
class GateResult:
    """Outcome of one pass through the gate."""

    state: AuthState
    snapshot: Optional[SessionSnapshot] = None
    status_code: int = HTTPStatus.OK
    detail: Optional[str] = None
    path: Tuple[AuthState, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.state is AuthState.VALID


class TokenLifecycleManager:
    """Evaluate a session's access token and refresh it when it has expired."""

    def __init__(
        self,
        oauth_client: GoogleOAuthClient,
        repository: UserRepository,
        session_store: SessionStore,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._oauth = oauth_client
        self._repository = repository
        self._sessions = session_store
        self._clock = clock

    async def authenticate(self, session_id: Optional[str]) -> GateResult:
        snapshot = await self._sessions.get(session_id) if session_id else None
        if snapshot is None:
            return GateResult(
                state=AuthState.UNAUTHENTICATED,
                status_code=HTTPStatus.UNAUTHORIZED,
                detail="Unauthorized",
                path=(AuthState.UNAUTHENTICATED,),
            )

        now = self._clock()
        if not snapshot.record.access_token_expired(now):
            return GateResult(state=AuthState.VALID, snapshot=snapshot, path=(AuthState.VALID,))

        return await self._refresh(snapshot, now)

    async def _refresh(self, snapshot: SessionSnapshot, now: datetime) -> GateResult:
        path = (AuthState.EXPIRED, AuthState.REFRESHING)
        subject_id = snapshot.subject_id
        logger.info("Access token expired for subject %s; refreshing", subject_id)

        try:
            refreshed = await self._oauth.refresh_access_token(snapshot.refresh_token)
            new_expiry = now + timedelta(seconds=refreshed.expires_in)
            canonical = await self._repository.upsert(
                subject_id,
                IdentityUpdate(
                    access_token=refreshed.access_token,
                    access_token_expires_at=new_expiry,
                ),
            )
        except (RefreshError, RepositoryError) as exc:
            reason = getattr(exc, "reason", None) or type(exc)
            logger.error(
                "Error refreshing access token for subject %s: %s (%s)",
                subject_id,
                exc,
                reason.__name__,
            )
            return GateResult(
                state=AuthState.FAILED,
                snapshot=snapshot,
                status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
                detail="Internal Server Error",
                path=path + (AuthState.FAILED,),
            )

        updated = SessionSnapshot.from_record(snapshot.session_id, canonical)
        if not await self._sessions.replace(updated):
            # Logged out while the refresh was in flight.
            logger.info("Session for subject %s ended during refresh", subject_id)
            return GateResult(
                state=AuthState.UNAUTHENTICATED,
                status_code=HTTPStatus.UNAUTHORIZED,
                detail="Unauthorized",
                path=path + (AuthState.UNAUTHENTICATED,),
            )
        logger.info(
            "Refreshed access token for subject %s; expires at %s",
            subject_id,
            canonical.access_token_expires_at.isoformat(),
        )
        return GateResult(
            state=AuthState.VALID,
            snapshot=updated,
            path=path + (AuthState.VALID,),
        )


__all__ = ["AuthState", "GateResult", "TokenLifecycleManager", "utcnow"]
