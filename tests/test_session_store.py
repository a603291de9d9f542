from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from _factories import make_record
from session_gateway.clients.session_store import InMemorySessionStore, SQLiteSessionStore
from session_gateway.core.token_cipher import TokenCipherService
from session_gateway.models.identity import SessionSnapshot


@pytest.mark.anyio
async def test_in_memory_store_round_trip_and_delete() -> None:
    store = InMemorySessionStore()
    snapshot = SessionSnapshot.from_record("sid-1", make_record())

    await store.put(snapshot)
    assert await store.get("sid-1") == snapshot
    assert await store.get("unknown") is None

    await store.delete("sid-1")
    assert await store.get("sid-1") is None


@pytest.mark.anyio
async def test_in_memory_store_drops_expired_sessions() -> None:
    store = InMemorySessionStore(ttl_seconds=60)
    stale = SessionSnapshot(
        session_id="sid-old",
        record=make_record(),
        stored_at=datetime.now(timezone.utc) - timedelta(minutes=5),
    )
    await store.put(stale)

    assert await store.get("sid-old") is None
    assert len(store) == 0


@pytest.mark.anyio
async def test_sqlite_store_persists_encrypted_snapshots(tmp_path) -> None:
    db_path = str(tmp_path / "sessions.db")
    cipher = TokenCipherService(secret="session-secret")
    store = SQLiteSessionStore(db_path, token_cipher=cipher)
    snapshot = SessionSnapshot.from_record(
        "sid-1", make_record(access_token="live-access-token")
    )

    await store.put(snapshot)
    store.close()

    reopened = SQLiteSessionStore(db_path, token_cipher=cipher)
    restored = await reopened.get("sid-1")
    assert restored == snapshot
    assert restored.to_record() == snapshot.record

    with sqlite3.connect(db_path) as conn:
        raw = conn.execute("SELECT data FROM sessions").fetchone()[0]
    assert "live-access-token" not in raw

    await reopened.delete("sid-1")
    assert await reopened.get("sid-1") is None
    reopened.close()


@pytest.mark.anyio
async def test_replace_only_overwrites_live_sessions(tmp_path) -> None:
    for store in (InMemorySessionStore(), SQLiteSessionStore(str(tmp_path / "sessions.db"))):
        original = SessionSnapshot.from_record("sid-1", make_record())
        refreshed = SessionSnapshot.from_record("sid-1", make_record(access_token="access-2"))

        assert await store.replace(refreshed) is False
        assert await store.get("sid-1") is None

        await store.put(original)
        assert await store.replace(refreshed) is True
        assert await store.get("sid-1") == refreshed

        await store.delete("sid-1")
        assert await store.replace(original) is False
        assert await store.get("sid-1") is None


@pytest.mark.anyio
async def test_sqlite_store_discards_unreadable_rows(tmp_path) -> None:
    db_path = str(tmp_path / "sessions.db")
    writer = SQLiteSessionStore(db_path, token_cipher=TokenCipherService(secret="old-secret"))
    await writer.put(SessionSnapshot.from_record("sid-1", make_record()))
    writer.close()

    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "INSERT INTO sessions (session_id, data, stored_at) VALUES (?, ?, ?)",
            ("sid-2", "not-a-token", datetime.now(timezone.utc).isoformat()),
        )

    reader = SQLiteSessionStore(db_path, token_cipher=TokenCipherService(secret="new-secret"))
    assert await reader.get("sid-1") is None
    assert await reader.get("sid-2") is None
    reader.close()

    with sqlite3.connect(db_path) as conn:
        remaining = conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]
    assert remaining == 0
