"""Builders and test doubles shared across the suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from session_gateway.clients.user_store import InMemoryUserRepository
from session_gateway.models.identity import IdentityRecord, IdentityUpdate


def make_record(
    *,
    subject_id: str = "sub-123",
    access_token: str = "access-1",
    refresh_token: str = "refresh-1",
    expires_in: timedelta = timedelta(hours=1),
    now: datetime | None = None,
) -> IdentityRecord:
    now = now or datetime.now(timezone.utc)
    return IdentityRecord(
        subject_id=subject_id,
        display_name="Ada Lovelace",
        email="ada@example.com",
        access_token=access_token,
        access_token_expires_at=now + expires_in,
        refresh_token=refresh_token,
        refresh_token_expires_at=now + timedelta(days=365),
    )


class CountingUserRepository(InMemoryUserRepository):
    """In-memory repository that counts upserts which changed a record."""

    def __init__(self) -> None:
        super().__init__()
        self.writes = 0

    async def upsert(self, subject_id: str, update: IdentityUpdate) -> IdentityRecord:
        before = self._records.get(subject_id)
        merged = await super().upsert(subject_id, update)
        if merged != before:
            self.writes += 1
        return merged
