"""Remote record store collaborator interface."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional

from ..models.records import ChangeEvent, FetchedRecord, PushResult


class RemoteRecordStore(ABC):
    """Authoritative per-owner record repository.

    Implementations retry their own transient failures and signal the
    outcome with the errors in `offline_sync.utils.errors`: `NotFound`,
    `ValidationRejected` and other `NonRetryableRemoteError`s for permanent
    rejections, `TransportError`/`RateLimited` for retryable failures and
    `AuthFailed` for rejected credentials.
    """

    @abstractmethod
    async def subscribe_to_changes(
        self,
        owner_id: str,
        cursor: Optional[str]
    ) -> AsyncIterator[ChangeEvent]:
        """Open the change stream.

        Awaiting this establishes the subscription; iterating the returned
        stream delivers events from `cursor` (or from now when None).
        Closing the iterator, or cancelling the task iterating it, ends
        the subscription.
        """

    @abstractmethod
    async def fetch_record(self, record_type: str, key: str) -> FetchedRecord:
        """Fetch the full record for a key."""

    @abstractmethod
    async def push_create(self, record_type: str, payload: Dict[str, Any]) -> PushResult:
        """Create a record; returns its canonical key and version."""

    @abstractmethod
    async def push_update(self, key: str, partial_payload: Dict[str, Any]) -> PushResult:
        """Update a record in place; returns its new version."""

    @abstractmethod
    async def push_delete(self, key: str) -> None:
        """Delete a record."""
