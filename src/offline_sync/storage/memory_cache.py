"""In-process local cache for ephemeral sessions."""

import copy
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .base import InboundDecider, LocalCache
from ..models.records import (
    CachedRecord,
    MutationOperation,
    PendingMutation,
    as_utc,
    content_hash,
    utcnow,
)


class MemoryLocalCache(LocalCache):
    """Dict-backed LocalCache; nothing survives the process."""

    def __init__(self):
        self._records: Dict[str, CachedRecord] = {}
        self._mutations: Dict[str, PendingMutation] = {}
        self._sequence: Dict[str, int] = {}
        self._counter = 0
        self._cursor: Optional[str] = None
        self._last_sync_at: Optional[datetime] = None

    async def get(self, key: str) -> Optional[CachedRecord]:
        record = self._records.get(key)
        return copy.deepcopy(record) if record else None

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
            payload=copy.deepcopy(payload),
            content_hash=version or content_hash(payload),
            pending_sync=pending_sync,
            updated_at=updated_at or utcnow(),
        )
        self._records[key] = record
        return copy.deepcopy(record)

    async def delete(self, key: str) -> None:
        self._records.pop(key, None)

    async def mark_pending_sync(self, key: str, pending: bool) -> None:
        if key in self._records:
            self._records[key].pending_sync = pending

    async def list_records(self, record_type: Optional[str] = None) -> List[CachedRecord]:
        return [
            copy.deepcopy(record)
            for key, record in sorted(self._records.items())
            if record_type is None or record.record_type == record_type
        ]

    async def apply_inbound(
        self,
        key: str,
        record_type: str,
        payload: Dict[str, Any],
        version: Optional[str],
        updated_at: datetime,
        decide: InboundDecider,
    ) -> Tuple[Any, Optional[CachedRecord]]:
        # No awaits below, so nothing can interleave with the write.
        existing = self._records.get(key)
        queued = self._mutations.get(key)
        decision = decide(copy.deepcopy(existing), copy.deepcopy(queued))
        if not decision.overwrite:
            return decision, None

        record = CachedRecord(
            key=key,
            record_type=record_type,
            payload=copy.deepcopy(payload),
            content_hash=version or content_hash(payload),
            pending_sync=queued is not None,
            updated_at=updated_at,
        )
        self._records[key] = record
        if queued is not None and decision.supersedes:
            queued.superseded = True
        return decision, copy.deepcopy(record)

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
            payload=copy.deepcopy(payload),
            enqueued_at=as_utc(enqueued_at) if enqueued_at else utcnow(),
        )
        self._counter += 1
        self._mutations[key] = mutation
        self._sequence[key] = self._counter
        return copy.deepcopy(mutation)

    async def dequeue_mutation(self, key: str) -> None:
        self._mutations.pop(key, None)
        self._sequence.pop(key, None)

    async def get_pending_mutation(self, key: str) -> Optional[PendingMutation]:
        mutation = self._mutations.get(key)
        return copy.deepcopy(mutation) if mutation else None

    async def list_pending_mutations(self) -> List[PendingMutation]:
        ordered = sorted(
            self._mutations.values(),
            key=lambda m: (m.enqueued_at, self._sequence[m.key])
        )
        return [copy.deepcopy(m) for m in ordered]

    async def count_pending_mutations(self) -> int:
        return len(self._mutations)

    async def mark_mutation_superseded(self, key: str) -> None:
        if key in self._mutations:
            self._mutations[key].superseded = True

    async def get_cursor(self) -> Optional[str]:
        return self._cursor

    async def set_cursor(self, cursor: str) -> None:
        self._cursor = cursor

    async def get_last_sync_at(self) -> Optional[datetime]:
        return self._last_sync_at

    async def set_last_sync_at(self, timestamp: datetime) -> None:
        self._last_sync_at = timestamp
