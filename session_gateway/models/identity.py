"""
Domain models for identity persistence and session snapshots.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class IdentityRecord(BaseModel):
    """The durable record kept for one provider subject."""

    model_config = ConfigDict(frozen=True)

    subject_id: str = Field(..., min_length=1, description="Provider-issued stable id.")
    display_name: str
    email: str
    access_token: str
    access_token_expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime

    @field_validator("access_token_expires_at", "refresh_token_expires_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def access_token_expired(self, now: datetime) -> bool:
        """True once ``now`` reaches the provider-declared expiry."""
        return _as_utc(now) >= self.access_token_expires_at


class IdentityUpdate(BaseModel):
    """Partial field set merged by ``UserRepository.upsert``.

    Only fields that were explicitly provided take part in the merge, so a
    refresh that carries the access token and its expiry leaves every other
    column of the stored record alone.
    """

    display_name: Optional[str] = None
    email: Optional[str] = None
    access_token: Optional[str] = None
    access_token_expires_at: Optional[datetime] = None
    refresh_token: Optional[str] = None
    refresh_token_expires_at: Optional[datetime] = None

    @field_validator("access_token_expires_at", "refresh_token_expires_at")
    @classmethod
    def _normalize_timestamp(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        return _as_utc(value)

    def changes(self) -> dict:
        """Return only the fields the caller supplied."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class SessionSnapshot(BaseModel):
    """A copy of an ``IdentityRecord`` attached to a session identifier.

    The snapshot may lag the durable record until the authentication gate
    replaces it with the repository's canonical result.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    record: IdentityRecord
    stored_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_record(cls, session_id: str, record: IdentityRecord) -> "SessionSnapshot":
        return cls(session_id=session_id, record=record)

    def to_record(self) -> IdentityRecord:
        return self.record

    @property
    def subject_id(self) -> str:
        return self.record.subject_id

    @property
    def refresh_token(self) -> str:
        return self.record.refresh_token

    @property
    def access_token_expires_at(self) -> datetime:
        return self.record.access_token_expires_at


__all__ = ["IdentityRecord", "IdentityUpdate", "SessionSnapshot"]
