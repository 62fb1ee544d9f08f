"""
Durable local cache on SQLite.

Records, the mutation queue and the stream checkpoint live in one database
file so a restarted application resumes exactly where it stopped.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite

from .base import InboundDecider, LocalCache
from .database import Database
from ..models.records import (
    CachedRecord,
    MutationOperation,
    PendingMutation,
    content_hash,
    utcnow,
)
from ..utils.config import CacheConfig
from ..utils.logging import get_logger


logger = get_logger("offline-sync.storage")

SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    key TEXT PRIMARY KEY,
    record_type TEXT NOT NULL,
    payload TEXT NOT NULL,
    content_hash TEXT,
    pending_sync INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_records_type ON records(record_type);

CREATE TABLE IF NOT EXISTS pending_mutations (
    key TEXT PRIMARY KEY,
    operation TEXT NOT NULL,
    record_type TEXT NOT NULL,
    payload TEXT,
    enqueued_at TEXT NOT NULL,
    superseded INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_pending_enqueued ON pending_mutations(enqueued_at);

CREATE TABLE IF NOT EXISTS sync_state (
    name TEXT PRIMARY KEY,
    value TEXT
);
"""


def _format_ts(value: datetime) -> str:
    """UTC ISO timestamp with a fixed width so text order is time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SQLiteLocalCache(LocalCache):
    """LocalCache backed by an aiosqlite database."""

    def __init__(
        self,
        db_path: Path | str,
        journal_mode: str = "WAL",
        synchronous: str = "NORMAL"
    ):
        self.db = Database(db_path, journal_mode=journal_mode, synchronous=synchronous)
        self._initialized = False

    @classmethod
    def from_config(cls, config: CacheConfig) -> "SQLiteLocalCache":
        return cls(
            config.path,
            journal_mode=config.journal_mode,
            synchronous=config.synchronous,
        )

    async def initialize(self) -> None:
        """Open the database and create tables."""
        if self._initialized:
            return
        await self.db.connect()
        await self.db.executescript(SCHEMA)
        self._initialized = True
        logger.debug("local_cache_initialized", path=str(self.db.db_path))

    async def close(self) -> None:
        await self.db.close()
        self._initialized = False

    # Records

    async def get(self, key: str) -> Optional[CachedRecord]:
        row = await self.db.fetchone("SELECT * FROM records WHERE key = ?", (key,))
        return self._row_to_record(row) if row else None

    async def put(
        self,
        key: str,
        record_type: str,
        payload: Dict[str, Any],
        version: Optional[str] = None,
        pending_sync: bool = False,
        updated_at: Optional[datetime] = None,
    ) -> CachedRecord:
        record = CachedRecord(
            key=key,
            record_type=record_type,
            payload=payload,
            content_hash=version or content_hash(payload),
            pending_sync=pending_sync,
            updated_at=updated_at or utcnow(),
        )
        await self.db.execute(
            """
            INSERT OR REPLACE INTO records
            (key, record_type, payload, content_hash, pending_sync, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.key,
                record.record_type,
                json.dumps(record.payload),
                record.content_hash,
                int(record.pending_sync),
                _format_ts(record.updated_at),
            )
        )
        return record

    async def delete(self, key: str) -> None:
        await self.db.execute("DELETE FROM records WHERE key = ?", (key,))

    async def mark_pending_sync(self, key: str, pending: bool) -> None:
        await self.db.execute(
            "UPDATE records SET pending_sync = ? WHERE key = ?",
            (int(pending), key)
        )

    async def list_records(self, record_type: Optional[str] = None) -> List[CachedRecord]:
        if record_type is None:
            rows = await self.db.fetchall("SELECT * FROM records ORDER BY key")
        else:
            rows = await self.db.fetchall(
                "SELECT * FROM records WHERE record_type = ? ORDER BY key",
                (record_type,)
            )
        return [self._row_to_record(row) for row in rows]

    async def apply_inbound(
        self,
        key: str,
        record_type: str,
        payload: Dict[str, Any],
        version: Optional[str],
        updated_at: datetime,
        decide: InboundDecider,
    ) -> Tuple[Any, Optional[CachedRecord]]:
        async with self.db.transaction() as conn:
            cursor = await conn.execute("SELECT * FROM records WHERE key = ?", (key,))
            row = await cursor.fetchone()
            existing = self._row_to_record(row) if row else None

            cursor = await conn.execute(
                "SELECT * FROM pending_mutations WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            queued = self._row_to_mutation(row) if row else None

            decision = decide(existing, queued)
            if not decision.overwrite:
                return decision, None

            record = CachedRecord(
                key=key,
                record_type=record_type,
                payload=payload,
                content_hash=version or content_hash(payload),
                pending_sync=queued is not None,
                updated_at=updated_at,
            )
            await conn.execute(
                """
                INSERT OR REPLACE INTO records
                (key, record_type, payload, content_hash, pending_sync, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.key,
                    record.record_type,
                    json.dumps(record.payload),
                    record.content_hash,
                    int(record.pending_sync),
                    _format_ts(record.updated_at),
                )
            )
            if queued is not None and decision.supersedes:
                await conn.execute(
                    "UPDATE pending_mutations SET superseded = 1 WHERE key = ?", (key,)
                )

        return decision, record

    # Mutation queue

    async def enqueue_mutation(
        self,
        key: str,
        operation: MutationOperation,
        payload: Optional[Dict[str, Any]],
        record_type: str,
        enqueued_at: Optional[datetime] = None,
    ) -> PendingMutation:
        mutation = PendingMutation(
            key=key,
            operation=operation,
            record_type=record_type,
            payload=payload,
            enqueued_at=enqueued_at or utcnow(),
        )
        await self.db.execute(
            """
            INSERT OR REPLACE INTO pending_mutations
            (key, operation, record_type, payload, enqueued_at, superseded)
            VALUES (?, ?, ?, ?, ?, 0)
            """,
            (
                mutation.key,
                mutation.operation.value,
                mutation.record_type,
                json.dumps(mutation.payload) if mutation.payload is not None else None,
                _format_ts(mutation.enqueued_at),
            )
        )
        return mutation

    async def dequeue_mutation(self, key: str) -> None:
        await self.db.execute("DELETE FROM pending_mutations WHERE key = ?", (key,))

    async def get_pending_mutation(self, key: str) -> Optional[PendingMutation]:
        row = await self.db.fetchone(
            "SELECT * FROM pending_mutations WHERE key = ?", (key,)
        )
        return self._row_to_mutation(row) if row else None

    async def list_pending_mutations(self) -> List[PendingMutation]:
        rows = await self.db.fetchall(
            "SELECT * FROM pending_mutations ORDER BY enqueued_at, rowid"
        )
        return [self._row_to_mutation(row) for row in rows]

    async def count_pending_mutations(self) -> int:
        row = await self.db.fetchone("SELECT COUNT(*) AS n FROM pending_mutations")
        return row["n"] if row else 0

    async def mark_mutation_superseded(self, key: str) -> None:
        await self.db.execute(
            "UPDATE pending_mutations SET superseded = 1 WHERE key = ?", (key,)
        )

    # Stream checkpoint

    async def get_cursor(self) -> Optional[str]:
        return await self._get_state("cursor")

    async def set_cursor(self, cursor: str) -> None:
        await self._set_state("cursor", cursor)

    async def get_last_sync_at(self) -> Optional[datetime]:
        value = await self._get_state("last_sync_at")
        return _parse_ts(value) if value else None

    async def set_last_sync_at(self, timestamp: datetime) -> None:
        await self._set_state("last_sync_at", _format_ts(timestamp))

    async def _get_state(self, name: str) -> Optional[str]:
        row = await self.db.fetchone("SELECT value FROM sync_state WHERE name = ?", (name,))
        return row["value"] if row else None

    async def _set_state(self, name: str, value: str) -> None:
        await self.db.execute(
            "INSERT OR REPLACE INTO sync_state (name, value) VALUES (?, ?)",
            (name, value)
        )

    # Row mapping

    def _row_to_record(self, row: aiosqlite.Row) -> CachedRecord:
        return CachedRecord(
            key=row["key"],
            record_type=row["record_type"],
            payload=json.loads(row["payload"]),
            content_hash=row["content_hash"],
            pending_sync=bool(row["pending_sync"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def _row_to_mutation(self, row: aiosqlite.Row) -> PendingMutation:
        return PendingMutation(
            key=row["key"],
            operation=MutationOperation(row["operation"]),
            record_type=row["record_type"],
            payload=json.loads(row["payload"]) if row["payload"] is not None else None,
            enqueued_at=_parse_ts(row["enqueued_at"]),
            superseded=bool(row["superseded"]),
        )
