"""
Inbound half of synchronization.

The EventConsumer subscribes to the remote change stream from the last
persisted cursor, filters events to the authenticated owner, resolves each
create/update against the local cache and writes the winner back.

Delivery runs through a bounded channel: a pump task drains the transport
into an asyncio.Queue and the consumer loop takes one event at a time,
applying all of its operations before taking the next.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from ..models.records import (
    ChangeAction,
    ChangeEvent,
    RecordOperation,
    SyncStatus,
    utcnow,
)
from ..remote.base import RemoteRecordStore
from ..storage.base import LocalCache
from ..utils.config import ConsumerConfig
from ..utils.errors import (
    StreamClosed,
    SyncError,
    TransportError,
    error_details,
    is_retryable,
)
from ..utils.logging import get_logger
from .conflict import resolve
from .observer import ObserverSet, invoke_callback


logger = get_logger("offline-sync.consumer")

StatusSetter = Callable[[SyncStatus], Awaitable[None]]


@dataclass
class RecordType:
    """A record type the consumer mirrors, with its own callbacks."""
    name: str
    on_updated: Optional[Callable[..., Any]] = None
    on_deleted: Optional[Callable[..., Any]] = None


class RecordTypeRegistry:
    """Known record types.

    With no types registered every type is accepted; once any type is
    registered, operations on other types are ignored.
    """

    def __init__(self):
        self._types: Dict[str, RecordType] = {}

    def register(
        self,
        name: str,
        on_updated: Optional[Callable[..., Any]] = None,
        on_deleted: Optional[Callable[..., Any]] = None,
    ) -> RecordType:
        record_type = RecordType(name, on_updated, on_deleted)
        self._types[name] = record_type
        return record_type

    def accepts(self, name: str) -> bool:
        return not self._types or name in self._types

    def names(self):
        return sorted(self._types)

    async def notify_updated(self, key, record) -> None:
        record_type = self._types.get(record.record_type)
        if record_type and record_type.on_updated:
            await invoke_callback(record_type.on_updated, key, record)

    async def notify_deleted(self, key: str, type_name: str) -> None:
        record_type = self._types.get(type_name)
        if record_type and record_type.on_deleted:
            await invoke_callback(record_type.on_deleted, key)


@dataclass
class _StreamEnd:
    """Channel sentinel: the transport stopped delivering."""
    error: Optional[BaseException] = None


@dataclass
class _FailedOperation:
    operation: RecordOperation
    event: ChangeEvent


class EventConsumer:
    """Applies the remote change stream to the local cache."""

    def __init__(
        self,
        remote: RemoteRecordStore,
        cache: LocalCache,
        observers: ObserverSet,
        record_types: Optional[RecordTypeRegistry] = None,
        config: Optional[ConsumerConfig] = None,
    ):
        self.remote = remote
        self.cache = cache
        self.observers = observers
        self.record_types = record_types or RecordTypeRegistry()
        self.config = config or ConsumerConfig()
        for name in self.config.record_types:
            self.record_types.register(name)
        self._failed: Deque[_FailedOperation] = deque()

    @property
    def failed_operation_count(self) -> int:
        return len(self._failed)

    def clear(self) -> None:
        """Forget remembered failures."""
        self._failed.clear()

    async def run_subscription(
        self,
        owner_id: str,
        cancelled: asyncio.Event,
        set_status: StatusSetter,
        on_delivered: Optional[Callable[[], None]] = None,
    ) -> None:
        """Consume one subscription until cancelled.

        Returns normally only when `cancelled` is set. Raises a
        TransportError when the subscription cannot be opened or drops.
        """
        cursor = await self.cache.get_cursor()
        try:
            stream = await self.remote.subscribe_to_changes(owner_id, cursor)
        except SyncError:
            raise
        except Exception as e:
            raise TransportError(f"Subscription failed: {e}", cause=e) from e

        logger.info("subscription_established", owner_id=owner_id, cursor=cursor)
        await set_status(SyncStatus.CONNECTED)

        if self.config.retry_failed_operations and self._failed:
            await self._retry_failed(cancelled)

        channel: asyncio.Queue = asyncio.Queue(maxsize=self.config.channel_size)
        pump = asyncio.create_task(self._pump(stream, channel))

        try:
            while not cancelled.is_set():
                item = await channel.get()

                if isinstance(item, _StreamEnd):
                    if item.error is None:
                        raise StreamClosed()
                    if isinstance(item.error, TransportError):
                        raise item.error
                    raise TransportError(
                        f"Change stream failed: {item.error}", cause=item.error
                    ) from item.error

                if on_delivered:
                    on_delivered()

                await self.apply_event(item, owner_id, cancelled, set_status)
        finally:
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass

    async def _pump(self, stream, channel: asyncio.Queue) -> None:
        """Feed the transport into the channel."""
        try:
            async for event in stream:
                await channel.put(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await channel.put(_StreamEnd(e))
        else:
            await channel.put(_StreamEnd())
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as e:
                    logger.debug("stream_close_failed", error=str(e))

    async def apply_event(
        self,
        event: ChangeEvent,
        owner_id: str,
        cancelled: asyncio.Event,
        set_status: StatusSetter,
    ) -> bool:
        """Apply every operation of one event, then persist its cursor.

        Returns:
            True if the event was applied and checkpointed
        """
        if event.owner_id != owner_id:
            # Shared stream: never touch the cache for another owner.
            logger.debug("foreign_event_dropped", event_owner=event.owner_id)
            return False

        await set_status(SyncStatus.SYNCING)

        for operation in event.operations:
            if cancelled.is_set():
                return False
            await self.apply_operation(operation, event)

        if cancelled.is_set():
            return False

        if event.cursor is not None:
            await self.cache.set_cursor(event.cursor)
        await self.cache.set_last_sync_at(utcnow())

        await set_status(SyncStatus.CONNECTED)
        logger.debug(
            "event_applied",
            cursor=event.cursor,
            operations=len(event.operations)
        )
        return True

    async def apply_operation(self, operation: RecordOperation, event: ChangeEvent) -> None:
        """Apply a single operation; failures are logged, never raised."""
        if not self.record_types.accepts(operation.record_type):
            logger.debug("unrecognized_record_type", record_type=operation.record_type)
            return

        try:
            if operation.action is ChangeAction.DELETE:
                await self._apply_delete(operation)
            else:
                await self._apply_upsert(operation, event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "operation_failed",
                record_type=operation.record_type,
                cursor=event.cursor,
                error=error_details(
                    e, "consumer", operation.action.value, operation.record_key
                )
            )
            self._remember_failure(operation, event, e)

    async def _apply_upsert(self, operation: RecordOperation, event: ChangeEvent) -> None:
        fetched = await self.remote.fetch_record(operation.record_type, operation.record_key)
        remote_timestamp = fetched.timestamp or event.source_timestamp

        # Decided against the live record and queue inside the write.
        decision, record = await self.cache.apply_inbound(
            operation.record_key,
            operation.record_type,
            fetched.payload,
            fetched.content_hash or operation.content_hash,
            remote_timestamp,
            lambda existing, queued: resolve(existing, remote_timestamp, queued),
        )

        if record is None:
            logger.info(
                "inbound_discarded_local_newer",
                key=operation.record_key,
                local_timestamp=decision.local_timestamp.isoformat(),
                remote_timestamp=decision.remote_timestamp.isoformat()
            )
            return

        if decision.supersedes:
            # The queued edit stays; the drainer decides its fate.
            logger.info(
                "remote_version_won",
                key=operation.record_key,
                local_timestamp=decision.local_timestamp.isoformat(),
                remote_timestamp=decision.remote_timestamp.isoformat()
            )

        await self.record_types.notify_updated(operation.record_key, record)
        await self.observers.record_updated(operation.record_key, record)

    async def _apply_delete(self, operation: RecordOperation) -> None:
        await self.cache.delete(operation.record_key)
        await self.record_types.notify_deleted(operation.record_key, operation.record_type)
        await self.observers.record_deleted(operation.record_key, operation.record_type)

    def _remember_failure(
        self,
        operation: RecordOperation,
        event: ChangeEvent,
        error: BaseException
    ) -> None:
        if not self.config.retry_failed_operations or not is_retryable(error):
            return

        if len(self._failed) >= self.config.max_failed_operations:
            if not self._failed:
                return
            dropped = self._failed.popleft()
            logger.warning(
                "failed_operation_dropped",
                key=dropped.operation.record_key,
                limit=self.config.max_failed_operations
            )
        self._failed.append(_FailedOperation(operation, event))

    async def _retry_failed(self, cancelled: asyncio.Event) -> None:
        """Re-apply operations that failed transiently on a previous subscription."""
        pending = list(self._failed)
        self._failed.clear()
        logger.info("retrying_failed_operations", count=len(pending))

        for index, failed in enumerate(pending):
            if cancelled.is_set():
                self._failed.extendleft(reversed(pending[index:]))
                return
            await self.apply_operation(failed.operation, failed.event)
