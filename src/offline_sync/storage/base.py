"""Local cache collaborator interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models.records import CachedRecord, MutationOperation, PendingMutation


InboundDecider = Callable[[Optional[CachedRecord], Optional[PendingMutation]], Any]


class LocalCache(ABC):
    """Key-value store for cached records plus the durable mutation queue.

    The queue holds at most one mutation per key; enqueueing a key that is
    already queued replaces the earlier entry.
    """

    async def initialize(self) -> None:
        """Prepare the underlying storage."""

    async def close(self) -> None:
        """Release the underlying storage."""

    # Records

    @abstractmethod
    async def get(self, key: str) -> Optional[CachedRecord]:
        """Get a cached record."""

    @abstractmethod
    async def put(
        self,
        key: str,
        record_type: str,
        payload: Dict[str, Any],
        version: Optional[str] = None,
        pending_sync: bool = False,
        updated_at: Optional[datetime] = None,
    ) -> CachedRecord:
        """Insert or replace a cached record."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a cached record; missing keys are ignored."""

    @abstractmethod
    async def mark_pending_sync(self, key: str, pending: bool) -> None:
        """Set the pending flag of an existing record."""

    @abstractmethod
    async def list_records(self, record_type: Optional[str] = None) -> List[CachedRecord]:
        """List cached records, optionally of one type."""

    @abstractmethod
    async def apply_inbound(
        self,
        key: str,
        record_type: str,
        payload: Dict[str, Any],
        version: Optional[str],
        updated_at: datetime,
        decide: InboundDecider,
    ) -> Tuple[Any, Optional[CachedRecord]]:
        """Resolve and write an inbound record as one atomic step.

        `decide` is called with the current record and queued mutation for
        the key and returns a decision exposing `overwrite` and `supersedes`.
        On overwrite the record's pending flag follows the live queue, and a
        queued mutation is flagged superseded when the decision says so.

        Returns:
            The decision, and the written record or None
        """

    # Mutation queue

    @abstractmethod
    async def enqueue_mutation(
        self,
        key: str,
        operation: MutationOperation,
        payload: Optional[Dict[str, Any]],
        record_type: str,
        enqueued_at: Optional[datetime] = None,
    ) -> PendingMutation:
        """Queue a mutation for a key, replacing any queued one."""

    @abstractmethod
    async def dequeue_mutation(self, key: str) -> None:
        """Remove the queued mutation for a key."""

    @abstractmethod
    async def get_pending_mutation(self, key: str) -> Optional[PendingMutation]:
        """Get the queued mutation for a key."""

    @abstractmethod
    async def list_pending_mutations(self) -> List[PendingMutation]:
        """List queued mutations, oldest first."""

    @abstractmethod
    async def count_pending_mutations(self) -> int:
        """Number of queued mutations."""

    @abstractmethod
    async def mark_mutation_superseded(self, key: str) -> None:
        """Flag the queued mutation for a key as overtaken by a remote write."""

    # Stream checkpoint

    @abstractmethod
    async def get_cursor(self) -> Optional[str]:
        """Last persisted stream cursor."""

    @abstractmethod
    async def set_cursor(self, cursor: str) -> None:
        """Persist the stream cursor."""

    @abstractmethod
    async def get_last_sync_at(self) -> Optional[datetime]:
        """Time the last inbound batch was applied."""

    @abstractmethod
    async def set_last_sync_at(self, timestamp: datetime) -> None:
        """Record the time an inbound batch was applied."""

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
