from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from _factories import make_record
from session_gateway.clients.user_store import (
    InMemoryUserRepository,
    RecordNotFoundError,
    RepositoryError,
    SQLiteUserRepository,
)
from session_gateway.core.token_cipher import TokenCipherService
from session_gateway.models.identity import IdentityUpdate


def _full_update(record) -> IdentityUpdate:
    return IdentityUpdate(**record.model_dump(exclude={"subject_id"}))


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "memory":
        return InMemoryUserRepository()
    return SQLiteUserRepository(
        str(tmp_path / "identities.db"),
        token_cipher=TokenCipherService(secret="repo-secret"),
    )


@pytest.mark.anyio
async def test_first_upsert_creates_full_record(repository) -> None:
    record = make_record()

    stored = await repository.upsert(record.subject_id, _full_update(record))

    assert stored == record
    assert await repository.find_by_subject(record.subject_id) == record


@pytest.mark.anyio
async def test_create_requires_every_field(repository) -> None:
    with pytest.raises(RepositoryError):
        await repository.upsert("new-subject", IdentityUpdate(access_token="only"))

    with pytest.raises(RecordNotFoundError):
        await repository.find_by_subject("new-subject")


@pytest.mark.anyio
async def test_partial_upsert_merges_only_supplied_fields(repository) -> None:
    record = make_record()
    await repository.upsert(record.subject_id, _full_update(record))
    new_expiry = datetime.now(timezone.utc) + timedelta(minutes=30)

    merged = await repository.upsert(
        record.subject_id,
        IdentityUpdate(access_token="access-2", access_token_expires_at=new_expiry),
    )

    assert merged.access_token == "access-2"
    assert merged.access_token_expires_at == new_expiry
    assert merged.refresh_token == record.refresh_token
    assert merged.refresh_token_expires_at == record.refresh_token_expires_at
    assert merged.display_name == record.display_name
    assert await repository.find_by_subject(record.subject_id) == merged


@pytest.mark.anyio
async def test_upsert_is_idempotent(repository) -> None:
    record = make_record()
    await repository.upsert(record.subject_id, _full_update(record))
    update = IdentityUpdate(
        access_token="access-2",
        access_token_expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )

    first = await repository.upsert(record.subject_id, update)
    after_first = await repository.find_by_subject(record.subject_id)
    second = await repository.upsert(record.subject_id, update)
    after_second = await repository.find_by_subject(record.subject_id)

    assert first == second
    assert after_first == after_second


@pytest.mark.anyio
async def test_missing_subject_raises_not_found(repository) -> None:
    with pytest.raises(RecordNotFoundError):
        await repository.find_by_subject("nobody")


@pytest.mark.anyio
async def test_sqlite_tokens_are_encrypted_at_rest(tmp_path) -> None:
    db_path = tmp_path / "identities.db"
    repository = SQLiteUserRepository(
        str(db_path), token_cipher=TokenCipherService(secret="repo-secret")
    )
    record = make_record(access_token="plain-access", refresh_token="plain-refresh")
    await repository.upsert(record.subject_id, _full_update(record))

    with sqlite3.connect(db_path) as conn:
        raw = conn.execute(
            "SELECT access_token_encrypted, refresh_token_encrypted FROM identity_records"
        ).fetchone()

    assert "plain-access" not in raw[0]
    assert "plain-refresh" not in raw[1]


@pytest.mark.anyio
async def test_sqlite_unreadable_tokens_surface_as_repository_error(tmp_path) -> None:
    db_path = str(tmp_path / "identities.db")
    record = make_record()
    writer = SQLiteUserRepository(db_path, token_cipher=TokenCipherService(secret="one"))
    await writer.upsert(record.subject_id, _full_update(record))

    reader = SQLiteUserRepository(db_path, token_cipher=TokenCipherService(secret="two"))
    with pytest.raises(RepositoryError):
        await reader.find_by_subject(record.subject_id)


@pytest.mark.anyio
async def test_in_memory_database_url_keeps_state_between_calls() -> None:
    repository = SQLiteUserRepository(
        ":memory:", token_cipher=TokenCipherService(secret="repo-secret")
    )
    record = make_record()

    await repository.upsert(record.subject_id, _full_update(record))

    assert await repository.find_by_subject(record.subject_id) == record
