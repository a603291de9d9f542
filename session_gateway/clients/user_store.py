"""Durable storage of identity records, one row per provider subject."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Protocol, TypeVar

from pydantic import ValidationError

from session_gateway.core.token_cipher import TokenCipherService, TokenDecryptionError
from session_gateway.models.identity import IdentityRecord, IdentityUpdate

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RepositoryError(Exception):
    """Raised when the identity store cannot complete an operation."""


class RecordNotFoundError(RepositoryError):
    """Raised when no identity record exists for a subject."""


class UserRepository(Protocol):
    async def find_by_subject(self, subject_id: str) -> IdentityRecord:
        ...

    async def upsert(self, subject_id: str, update: IdentityUpdate) -> IdentityRecord:
        ...


def merge_record(
    subject_id: str, existing: Optional[IdentityRecord], update: IdentityUpdate
) -> IdentityRecord:
    """Apply ``update`` on top of ``existing`` and return the canonical record.

    Creating a record requires the full field set; merging into an existing
    record only touches the supplied fields. ``subject_id`` never changes.
    """
    changes = update.changes()
    if existing is None:
        try:
            return IdentityRecord(subject_id=subject_id, **changes)
        except ValidationError as exc:
            raise RepositoryError(
                f"Cannot create identity record for {subject_id}: incomplete fields."
            ) from exc
    return existing.model_copy(update=changes)


class InMemoryUserRepository:
    """Process-local repository with the same contract as the SQLite one."""

    def __init__(self) -> None:
        self._records: Dict[str, IdentityRecord] = {}

    async def find_by_subject(self, subject_id: str) -> IdentityRecord:
        await asyncio.sleep(0)
        record = self._records.get(subject_id)
        if record is None:
            raise RecordNotFoundError(f"No identity record for {subject_id}.")
        return record

    async def upsert(self, subject_id: str, update: IdentityUpdate) -> IdentityRecord:
        await asyncio.sleep(0)
        existing = self._records.get(subject_id)
        merged = merge_record(subject_id, existing, update)
        if merged != existing:
            self._records[subject_id] = merged
        return merged


class SQLiteUserRepository:
    """SQLite-backed identity store with tokens encrypted at rest.

    Each call runs on a worker thread under ``timeout_seconds``. Upserts read,
    merge and write inside one ``BEGIN IMMEDIATE`` transaction, so concurrent
    writers for the same subject resolve to last-writer-wins without ever
    exposing a partially written row.

    The deadline bounds how long callers wait, not the worker thread: a
    transaction already past ``BEGIN IMMEDIATE`` when the deadline fires may
    still commit. Connections use the same value as their busy timeout so a
    worker stuck on the write lock gives up on its own.
    """

    def __init__(
        self,
        db_path: str,
        *,
        token_cipher: TokenCipherService,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._db_path = db_path
        self._cipher = token_cipher
        self._timeout = timeout_seconds
        self._shared: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        if db_path == ":memory:":
            self._shared = self._open()
        else:
            parent = Path(db_path).parent
            if not parent.exists():
                parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self._db_path,
            timeout=self._timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if self._shared is not None:
            with self._lock:
                yield self._shared
            return
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS identity_records (
                    subject_id TEXT PRIMARY KEY,
                    display_name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    access_token_encrypted TEXT NOT NULL,
                    access_token_expires_at TEXT NOT NULL,
                    refresh_token_encrypted TEXT NOT NULL,
                    refresh_token_expires_at TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            raise RepositoryError("Identity store operation timed out.") from exc
        except sqlite3.Error as exc:
            logger.exception("Identity store failure")
            raise RepositoryError(str(exc)) from exc

    async def find_by_subject(self, subject_id: str) -> IdentityRecord:
        record = await self._run(self._select, subject_id)
        if record is None:
            raise RecordNotFoundError(f"No identity record for {subject_id}.")
        return record

    async def upsert(self, subject_id: str, update: IdentityUpdate) -> IdentityRecord:
        return await self._run(self._upsert_sync, subject_id, update)

    def _select(self, subject_id: str) -> Optional[IdentityRecord]:
        with self._connect() as conn:
            return self._select_with(conn, subject_id)

    def _select_with(
        self, conn: sqlite3.Connection, subject_id: str
    ) -> Optional[IdentityRecord]:
        row = conn.execute(
            "SELECT * FROM identity_records WHERE subject_id = ?", (subject_id,)
        ).fetchone()
        if not row:
            return None
        try:
            return IdentityRecord(
                subject_id=row["subject_id"],
                display_name=row["display_name"],
                email=row["email"],
                access_token=self._cipher.decrypt(row["access_token_encrypted"]),
                access_token_expires_at=datetime.fromisoformat(row["access_token_expires_at"]),
                refresh_token=self._cipher.decrypt(row["refresh_token_encrypted"]),
                refresh_token_expires_at=datetime.fromisoformat(row["refresh_token_expires_at"]),
            )
        except TokenDecryptionError as exc:
            raise RepositoryError(f"Stored tokens for {subject_id} are unreadable.") from exc

    def _upsert_sync(self, subject_id: str, update: IdentityUpdate) -> IdentityRecord:
        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                existing = self._select_with(conn, subject_id)
                merged = merge_record(subject_id, existing, update)
                if merged != existing:
                    conn.execute(
                        """
                        INSERT INTO identity_records (
                            subject_id, display_name, email,
                            access_token_encrypted, access_token_expires_at,
                            refresh_token_encrypted, refresh_token_expires_at,
                            created_at, updated_at
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(subject_id) DO UPDATE SET
                            display_name = excluded.display_name,
                            email = excluded.email,
                            access_token_encrypted = excluded.access_token_encrypted,
                            access_token_expires_at = excluded.access_token_expires_at,
                            refresh_token_encrypted = excluded.refresh_token_encrypted,
                            refresh_token_expires_at = excluded.refresh_token_expires_at,
                            updated_at = excluded.updated_at
                        """,
                        (
                            merged.subject_id,
                            merged.display_name,
                            merged.email,
                            self._cipher.encrypt(merged.access_token),
                            merged.access_token_expires_at.isoformat(),
                            self._cipher.encrypt(merged.refresh_token),
                            merged.refresh_token_expires_at.isoformat(),
                            now,
                            now,
                        ),
                    )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        return merged


__all__ = [
    "InMemoryUserRepository",
    "RecordNotFoundError",
    "RepositoryError",
    "SQLiteUserRepository",
    "UserRepository",
    "merge_record",
]
