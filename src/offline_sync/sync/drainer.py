"""
Outbound half of synchronization.

The PendingMutationDrainer replays queued local mutations against the
remote store in enqueue order. Retryable failures stay queued for the next
pass; permanent rejections are dropped since they can never succeed.
The drainer is the only component that clears a record's pending flag.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from ..models.records import MutationOperation, PendingMutation, PushResult, as_utc
from ..remote.base import RemoteRecordStore
from ..storage.base import LocalCache
from ..utils.config import DrainerConfig
from ..utils.errors import SyncFailure, error_details, is_retryable
from ..utils.logging import get_logger
from .session import SessionProvider, require_session


logger = get_logger("offline-sync.drainer")


@dataclass
class DrainResult:
    """Outcome of one drain pass."""
    applied: int = 0
    retained: int = 0
    discarded: int = 0
    superseded: int = 0
    errors: List[BaseException] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.applied + self.retained + self.discarded


class PendingMutationDrainer:
    """Pushes queued local mutations upstream."""

    def __init__(
        self,
        remote: RemoteRecordStore,
        cache: LocalCache,
        session_provider: SessionProvider,
        config: Optional[DrainerConfig] = None,
    ):
        self.remote = remote
        self.cache = cache
        self.session_provider = session_provider
        self.config = config or DrainerConfig()
        self.last_result: Optional[DrainResult] = None
        self._draining = False

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def drain(self) -> int:
        """
        Apply every queued mutation, oldest first.

        Returns:
            Number of mutations successfully applied

        Raises:
            AuthenticationRequired: No session is available
            SyncFailure: Every attempted mutation failed
        """
        session = await require_session(self.session_provider)

        if self._draining:
            logger.info("drain_already_running")
            return 0

        self._draining = True
        try:
            result = await self._drain_pass(session.owner_id)
        finally:
            self._draining = False

        self.last_result = result

        if result.attempted and not result.applied:
            raise SyncFailure(result.errors, attempted=result.attempted)

        return result.applied

    async def _drain_pass(self, owner_id: str) -> DrainResult:
        result = DrainResult()

        mutations = await self.cache.list_pending_mutations()
        if not mutations:
            return result

        # Causal order of local edits; sort is stable for equal timestamps.
        ordered = sorted(mutations, key=lambda m: as_utc(m.enqueued_at))
        logger.info("drain_started", owner_id=owner_id, pending=len(ordered))

        for mutation in ordered:
            if (
                mutation.superseded
                and self.config.superseded_policy == "discard"
                and mutation.operation is not MutationOperation.DELETE
            ):
                await self._discard_superseded(mutation)
                result.superseded += 1
                continue

            try:
                await self._apply(mutation)
                result.applied += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                result.errors.append(e)
                if is_retryable(e):
                    result.retained += 1
                    logger.warning(
                        "mutation_retained",
                        error=error_details(
                            e, "drainer", mutation.operation.value, mutation.key
                        )
                    )
                else:
                    result.discarded += 1
                    logger.error(
                        "mutation_rejected",
                        error=error_details(
                            e, "drainer", mutation.operation.value, mutation.key
                        )
                    )
                    await self._forget(mutation)

        logger.info(
            "drain_finished",
            applied=result.applied,
            retained=result.retained,
            discarded=result.discarded,
            superseded=result.superseded
        )
        return result

    async def _apply(self, mutation: PendingMutation) -> None:
        if mutation.operation is MutationOperation.CREATE:
            await self._apply_create(mutation)
        elif mutation.operation is MutationOperation.UPDATE:
            await self._apply_update(mutation)
        else:
            await self._apply_delete(mutation)

    async def _apply_create(self, mutation: PendingMutation) -> None:
        payload = mutation.payload or {}
        pushed = await self.remote.push_create(mutation.record_type, payload)

        if not await self._still_queued(mutation):
            await self._rebase_create(mutation, pushed)
            return

        cached = await self.cache.get(mutation.key)
        await self.cache.put(
            pushed.key,
            mutation.record_type,
            payload,
            version=pushed.version,
            pending_sync=False,
            updated_at=cached.updated_at if cached else None,
        )
        if pushed.key != mutation.key:
            await self.cache.delete(mutation.key)
        await self.cache.dequeue_mutation(mutation.key)

        logger.debug("create_applied", local_key=mutation.key, key=pushed.key)

    async def _rebase_create(self, mutation: PendingMutation, pushed: PushResult) -> None:
        """Move edits made during an in-flight create onto the canonical key."""
        latest = await self.cache.get_pending_mutation(mutation.key)
        cached = await self.cache.get(mutation.key)
        await self.cache.dequeue_mutation(mutation.key)

        if latest is None or latest.operation is MutationOperation.DELETE:
            # Deleted locally before the create was confirmed.
            await self.cache.enqueue_mutation(
                pushed.key,
                MutationOperation.DELETE,
                None,
                record_type=mutation.record_type,
                enqueued_at=latest.enqueued_at if latest else None,
            )
        else:
            await self.cache.put(
                pushed.key,
                mutation.record_type,
                latest.payload or {},
                version=pushed.version,
                pending_sync=True,
                updated_at=cached.updated_at if cached else None,
            )
            await self.cache.enqueue_mutation(
                pushed.key,
                MutationOperation.UPDATE,
                latest.payload,
                record_type=mutation.record_type,
                enqueued_at=latest.enqueued_at,
            )

        if pushed.key != mutation.key:
            await self.cache.delete(mutation.key)

        logger.info("create_rebased", local_key=mutation.key, key=pushed.key)

    async def _apply_update(self, mutation: PendingMutation) -> None:
        pushed = await self.remote.push_update(mutation.key, mutation.payload or {})

        if not await self._still_queued(mutation):
            logger.info("mutation_replaced_during_drain", key=mutation.key)
            return

        cached = await self.cache.get(mutation.key)
        await self.cache.put(
            mutation.key,
            mutation.record_type,
            mutation.payload or {},
            version=pushed.version,
            pending_sync=False,
            updated_at=cached.updated_at if cached else None,
        )
        await self.cache.dequeue_mutation(mutation.key)

        logger.debug("update_applied", key=mutation.key)

    async def _apply_delete(self, mutation: PendingMutation) -> None:
        await self.remote.push_delete(mutation.key)

        if not await self._still_queued(mutation):
            logger.info("mutation_replaced_during_drain", key=mutation.key)
            return

        await self.cache.delete(mutation.key)
        await self.cache.dequeue_mutation(mutation.key)

        logger.debug("delete_applied", key=mutation.key)

    async def _still_queued(self, mutation: PendingMutation) -> bool:
        """Whether the queue still holds this exact mutation for its key."""
        current = await self.cache.get_pending_mutation(mutation.key)
        return (
            current is not None
            and current.operation is mutation.operation
            and current.payload == mutation.payload
        )

    async def _forget(self, mutation: PendingMutation) -> None:
        """Drop a mutation that can never succeed."""
        if not await self._still_queued(mutation):
            return
        await self.cache.dequeue_mutation(mutation.key)
        await self.cache.mark_pending_sync(mutation.key, False)

    async def _discard_superseded(self, mutation: PendingMutation) -> None:
        """Drop a local edit overtaken by a newer remote version."""
        await self.cache.dequeue_mutation(mutation.key)
        await self.cache.mark_pending_sync(mutation.key, False)
        logger.info(
            "superseded_mutation_discarded",
            key=mutation.key,
            operation=mutation.operation.value
        )
