"""Session snapshot storage keyed by opaque session identifiers."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol

from pydantic import ValidationError

from session_gateway.core.token_cipher import TokenCipherService, TokenDecryptionError
from session_gateway.models.identity import SessionSnapshot

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    async def get(self, session_id: str) -> Optional[SessionSnapshot]:
        ...

    async def put(self, snapshot: SessionSnapshot) -> None:
        ...

    async def replace(self, snapshot: SessionSnapshot) -> bool:
        """Overwrite an existing session only; False if it is gone."""
        ...

    async def delete(self, session_id: str) -> None:
        ...


class InMemorySessionStore:
    """Process-local session store; entries older than ``ttl_seconds`` vanish."""

    def __init__(self, ttl_seconds: int = 86400) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._snapshots: Dict[str, SessionSnapshot] = {}

    async def get(self, session_id: str) -> Optional[SessionSnapshot]:
        await asyncio.sleep(0)
        snapshot = self._snapshots.get(session_id)
        if snapshot is None:
            return None
        if datetime.now(timezone.utc) - snapshot.stored_at > self._ttl:
            self._snapshots.pop(session_id, None)
            return None
        return snapshot

    async def put(self, snapshot: SessionSnapshot) -> None:
        await asyncio.sleep(0)
        self._snapshots[snapshot.session_id] = snapshot

    async def replace(self, snapshot: SessionSnapshot) -> bool:
        await asyncio.sleep(0)
        if snapshot.session_id not in self._snapshots:
            return False
        self._snapshots[snapshot.session_id] = snapshot
        return True

    async def delete(self, session_id: str) -> None:
        self._snapshots.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._snapshots)


class SQLiteSessionStore:
    """Session snapshots serialized as JSON rows so they survive restarts.

    Snapshots carry live tokens, so rows are encrypted when a cipher is given.
    """

    def __init__(
        self,
        db_path: str,
        ttl_seconds: int = 86400,
        *,
        token_cipher: Optional[TokenCipherService] = None,
    ) -> None:
        self._db_path = db_path
        self._cipher = token_cipher
        self._ttl = timedelta(seconds=ttl_seconds)
        self._lock = threading.Lock()
        if db_path != ":memory:":
            parent = Path(db_path).parent
            if not parent.exists():
                parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock, self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    stored_at TEXT NOT NULL
                )
                """
            )

    def _get_sync(self, session_id: str) -> Optional[SessionSnapshot]:
        with self._lock:
            row = self._conn.execute(
                "SELECT data FROM sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
        if not row:
            return None
        try:
            snapshot = self._decode(row["data"])
        except (TokenDecryptionError, ValidationError, json.JSONDecodeError) as exc:
            logger.warning(
                "Discarding unreadable session %s: %s", session_id, exc.__class__.__name__
            )
            self._delete_sync(session_id)
            return None
        if datetime.now(timezone.utc) - snapshot.stored_at > self._ttl:
            self._delete_sync(session_id)
            return None
        return snapshot

    def _decode(self, data: str) -> SessionSnapshot:
        if self._cipher is not None:
            data = self._cipher.decrypt(data)
        return SessionSnapshot.model_validate(json.loads(data))

    def _encode(self, snapshot: SessionSnapshot) -> str:
        data = snapshot.model_dump_json()
        if self._cipher is not None:
            data = self._cipher.encrypt(data)
        return data

    def _put_sync(self, snapshot: SessionSnapshot) -> None:
        data = self._encode(snapshot)
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO sessions (session_id, data, stored_at)
                VALUES (?, ?, ?)
                ON CONFLICT(session_id) DO UPDATE SET
                    data = excluded.data,
                    stored_at = excluded.stored_at
                """,
                (
                    snapshot.session_id,
                    data,
                    snapshot.stored_at.isoformat(),
                ),
            )

    def _replace_sync(self, snapshot: SessionSnapshot) -> bool:
        data = self._encode(snapshot)
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "UPDATE sessions SET data = ?, stored_at = ? WHERE session_id = ?",
                (data, snapshot.stored_at.isoformat(), snapshot.session_id),
            )
        return cursor.rowcount == 1

    def _delete_sync(self, session_id: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))

    async def get(self, session_id: str) -> Optional[SessionSnapshot]:
        return await asyncio.to_thread(self._get_sync, session_id)

    async def put(self, snapshot: SessionSnapshot) -> None:
        await asyncio.to_thread(self._put_sync, snapshot)

    async def replace(self, snapshot: SessionSnapshot) -> bool:
        return await asyncio.to_thread(self._replace_sync, snapshot)

    async def delete(self, session_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, session_id)

    def close(self) -> None:
        self._conn.close()


__all__ = ["InMemorySessionStore", "SQLiteSessionStore", "SessionStore"]
