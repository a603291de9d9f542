"""
Login and logout orchestration for the authorization code flow.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from session_gateway.clients.google_auth import GoogleOAuthClient
from session_gateway.clients.session_store import SessionStore
from session_gateway.clients.user_store import UserRepository
from session_gateway.core.config import OAuthSettings
from session_gateway.models.identity import IdentityUpdate, SessionSnapshot
from session_gateway.services.token_lifecycle import Clock, utcnow

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class LoginService:
    """Turn an authorization code into a persisted identity and a fresh session."""

    def __init__(
        self,
        oauth_client: GoogleOAuthClient,
        repository: UserRepository,
        session_store: SessionStore,
        oauth_settings: OAuthSettings,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._oauth = oauth_client
        self._repository = repository
        self._sessions = session_store
        self._settings = oauth_settings
        self._clock = clock

    async def complete_login(self, code: str) -> SessionSnapshot:
        """Exchange ``code``, verify the ID token and store the full record.

        Provider and repository errors propagate unchanged; nothing is written
        to the session store unless every step succeeded.
        """
        issued_at = self._clock()
        tokens = await self._oauth.exchange_authorization_code(code)
        claims = await self._oauth.verify_identity(tokens.id_token)

        record = await self._repository.upsert(
            claims.subject_id,
            IdentityUpdate(
                display_name=claims.name,
                email=claims.email,
                access_token=tokens.access_token,
                access_token_expires_at=issued_at + timedelta(seconds=tokens.expires_in),
                refresh_token=tokens.refresh_token,
                refresh_token_expires_at=issued_at
                + timedelta(days=self._settings.refresh_token_lifetime_days),
            ),
        )

        snapshot = SessionSnapshot.from_record(new_session_id(), record)
        await self._sessions.put(snapshot)
        logger.info("Established session for subject %s", record.subject_id)
        return snapshot

    async def logout(self, session_id: str) -> None:
        await self._sessions.delete(session_id)


__all__ = ["LoginService", "new_session_id"]
