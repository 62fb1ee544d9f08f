"""
Local edits made before the remote store confirms them.

Every edit writes the local cache with the pending flag set and queues a
mutation for the key, so a pending record always has a queued mutation.
Edits never touch the network and work while offline.
"""

import uuid
from typing import Any, Dict, Optional

from ..models.records import CachedRecord, MutationOperation, utcnow
from ..storage.base import LocalCache
from ..utils.errors import NotFound
from ..utils.logging import get_logger


logger = get_logger("offline-sync.local-edits")

LOCAL_KEY_PREFIX = "local:"


def is_local_key(key: str) -> bool:
    """Whether a key is provisional, assigned before the remote confirmed a create."""
    return key.startswith(LOCAL_KEY_PREFIX)


class LocalEditor:
    """Records local edits and queues them for the drainer.

    A key holds at most one queued mutation, so consecutive edits coalesce:

    ==========  ==========  ==========================
    queued      new edit    result
    ==========  ==========  ==========================
    create      update      create with the new payload
    create      delete      nothing queued, record gone
    update      update      update with the new payload
    update      delete      delete
    delete      any         the new edit
    ==========  ==========  ==========================

    Coalesced entries keep their original enqueue time.
    """

    def __init__(self, cache: LocalCache):
        self.cache = cache

    async def create(
        self,
        record_type: str,
        payload: Dict[str, Any],
        key: Optional[str] = None
    ) -> CachedRecord:
        """Create a record locally under a provisional key."""
        key = key or f"{LOCAL_KEY_PREFIX}{record_type}/{uuid.uuid4().hex}"
        now = utcnow()

        record = await self.cache.put(
            key, record_type, payload, pending_sync=True, updated_at=now
        )
        await self.cache.enqueue_mutation(
            key, MutationOperation.CREATE, payload,
            record_type=record_type, enqueued_at=now
        )
        logger.debug("local_create", key=key, record_type=record_type)
        return record

    async def update(self, key: str, payload: Dict[str, Any]) -> CachedRecord:
        """Replace the payload of a cached record locally."""
        existing = await self.cache.get(key)
        if existing is None:
            raise NotFound(f"No cached record for {key}")

        now = utcnow()
        queued = await self.cache.get_pending_mutation(key)

        if queued is not None and queued.operation is MutationOperation.CREATE:
            operation = MutationOperation.CREATE
        else:
            operation = MutationOperation.UPDATE

        enqueued_at = (
            queued.enqueued_at
            if queued is not None and queued.operation is not MutationOperation.DELETE
            else now
        )

        record = await self.cache.put(
            key, existing.record_type, payload, pending_sync=True, updated_at=now
        )
        await self.cache.enqueue_mutation(
            key, operation, payload,
            record_type=existing.record_type, enqueued_at=enqueued_at
        )
        logger.debug("local_update", key=key, operation=operation.value)
        return record

    async def delete(self, key: str) -> None:
        """Delete a record locally."""
        existing = await self.cache.get(key)
        queued = await self.cache.get_pending_mutation(key)

        if existing is None and queued is None:
            raise NotFound(f"No cached record for {key}")

        await self.cache.delete(key)

        if queued is not None and queued.operation is MutationOperation.CREATE:
            # Never reached the remote store.
            await self.cache.dequeue_mutation(key)
            logger.debug("local_create_cancelled", key=key)
            return

        record_type = existing.record_type if existing else queued.record_type
        enqueued_at = (
            queued.enqueued_at
            if queued is not None and queued.operation is MutationOperation.UPDATE
            else utcnow()
        )
        await self.cache.enqueue_mutation(
            key, MutationOperation.DELETE, None,
            record_type=record_type, enqueued_at=enqueued_at
        )
        logger.debug("local_delete", key=key)
