"""
Sync controller.

Orchestrates the inbound consumer and the outbound drainer, owns the
connection state machine and the reconnection policy, and reports the
aggregate sync state.

States::

    idle -> connecting -> connected <-> syncing
    connecting/connected/syncing -> paused -> connecting   (pause/resume)
    connecting/connected -> error                          (retries exhausted)
    any -> idle                                            (stop)

The controller is an ordinary object owned by the application's
composition root; create one per mirrored repository and pass it to the
code that needs it.
"""

import asyncio
from typing import Any, Callable, Optional

from ..models.records import SyncState, SyncStatus
from ..remote.base import RemoteRecordStore
from ..storage.base import LocalCache
from ..utils.config import SyncConfig
from ..utils.errors import AuthenticationRequired, RateLimited, SyncFailure, error_details
from ..utils.logging import get_logger
from .consumer import EventConsumer, RecordType, RecordTypeRegistry
from .drainer import PendingMutationDrainer
from .observer import ObserverSet, SyncObserver
from .reconnect import ReconnectPolicy, cancellable_sleep
from .session import AuthSession, SessionProvider, require_session


logger = get_logger("offline-sync.controller")


class SyncController:
    """
    Start/stop/pause/resume control over one owner's synchronization.

    Provides:
    - A single change-stream subscription at a time
    - Reconnection with exponential backoff
    - Queued mutation replay through drain()
    - Aggregate state for status indicators
    """

    def __init__(
        self,
        remote: RemoteRecordStore,
        cache: LocalCache,
        session_provider: SessionProvider,
        config: Optional[SyncConfig] = None,
    ):
        """
        Initialize sync controller.

        Args:
            remote: Authoritative remote record store
            cache: Local cache the remote is mirrored into
            session_provider: Returns the authenticated session, or None
            config: Sync configuration
        """
        self.remote = remote
        self.cache = cache
        self.session_provider = session_provider
        self.config = config or SyncConfig()

        self.observers = ObserverSet()
        self.record_types = RecordTypeRegistry()
        self.consumer = EventConsumer(
            remote, cache, self.observers, self.record_types, self.config.consumer
        )
        self.drainer = PendingMutationDrainer(
            remote, cache, session_provider, self.config.drainer
        )
        self.reconnect = ReconnectPolicy.from_config(self.config.reconnect)

        self._status = SyncStatus.IDLE
        self._session: Optional[AuthSession] = None
        self._worker: Optional[asyncio.Task] = None
        self._cancelled = asyncio.Event()
        self._last_error: Optional[str] = None

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def owner_id(self) -> Optional[str]:
        return self._session.owner_id if self._session else None

    def add_observer(self, observer: SyncObserver) -> SyncObserver:
        """Register an observer for status, record and error notifications."""
        return self.observers.add(observer)

    def remove_observer(self, observer: SyncObserver) -> bool:
        return self.observers.remove(observer)

    def register_record_type(
        self,
        name: str,
        on_updated: Optional[Callable[..., Any]] = None,
        on_deleted: Optional[Callable[..., Any]] = None,
    ) -> RecordType:
        """Mirror a record type, with optional per-type callbacks."""
        return self.record_types.register(name, on_updated, on_deleted)

    async def start(self) -> None:
        """
        Start syncing from the last checkpoint.

        No-op while already connecting or connected.

        Raises:
            AuthenticationRequired: No session is available
        """
        if self._status.is_active:
            logger.debug("start_ignored", status=self._status.value)
            return

        session = await require_session(self.session_provider)

        if self._status is SyncStatus.PAUSED:
            await self._cancel_worker()

        self._session = session
        self._last_error = None
        logger.info("starting_sync", owner_id=session.owner_id)
        await self._launch()

    async def stop(self) -> None:
        """Cancel the subscription, drop session state and go idle."""
        logger.info("stopping_sync", status=self._status.value)
        await self._cancel_worker()
        self._session = None
        self._last_error = None
        self.consumer.clear()
        await self._set_status(SyncStatus.IDLE)

    async def pause(self) -> None:
        """Cancel the subscription but keep session state for resume()."""
        if self._status is SyncStatus.PAUSED:
            return
        if not self._status.is_active:
            logger.debug("pause_ignored", status=self._status.value)
            return

        logger.info("pausing_sync")
        await self._cancel_worker()
        await self._set_status(SyncStatus.PAUSED)

    async def resume(self) -> None:
        """Reconnect from the last checkpoint. No-op unless paused."""
        if self._status is not SyncStatus.PAUSED:
            return
        if self._session is None:
            raise AuthenticationRequired()

        logger.info("resuming_sync", owner_id=self._session.owner_id)
        await self._launch()

    async def drain(self) -> int:
        """
        Replay queued local mutations.

        Returns:
            Number of mutations successfully applied
        """
        try:
            return await self.drainer.drain()
        except SyncFailure as e:
            self._last_error = e.message
            raise

    async def get_sync_state(self) -> SyncState:
        """Current status plus local-only queries; never calls the remote."""
        pending = await self.cache.count_pending_mutations()
        last_sync_at = await self.cache.get_last_sync_at()
        return SyncState(
            status=self._status,
            last_sync_at=last_sync_at,
            pending_count=pending,
            last_error=self._last_error,
        )

    async def wait_for_status(self, status: SyncStatus, timeout: Optional[float] = None) -> None:
        """Wait until the controller reaches a status."""
        async def _poll():
            while self._status is not status:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout=timeout)

    # Internals

    async def _launch(self) -> None:
        self.reconnect.reset()
        self._cancelled = asyncio.Event()
        await self._set_status(SyncStatus.CONNECTING)
        self._worker = asyncio.create_task(
            self._run(self._session.owner_id, self._cancelled)
        )

    async def _cancel_worker(self) -> None:
        self._cancelled.set()
        worker, self._worker = self._worker, None

        if worker is None or worker.done():
            return

        worker.cancel()
        if worker is asyncio.current_task():
            # Called from a callback inside the processing loop.
            return
        try:
            await worker
        except asyncio.CancelledError:
            pass

    async def _run(self, owner_id: str, cancelled: asyncio.Event) -> None:
        """Subscription worker: consume, and reconnect with backoff on failure."""
        while not cancelled.is_set():
            try:
                await self.consumer.run_subscription(
                    owner_id,
                    cancelled,
                    self._set_status,
                    on_delivered=self.reconnect.reset,
                )
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if cancelled.is_set():
                    return

                self._last_error = str(e)
                delay = self.reconnect.next_delay()
                if delay is not None and isinstance(e, RateLimited) and e.retry_after:
                    delay = max(delay, e.retry_after)

                if delay is None:
                    logger.error(
                        "reconnect_exhausted",
                        attempts=self.reconnect.attempts,
                        error=error_details(e, "controller", "subscribe", owner_id=owner_id)
                    )
                    await self._set_status(SyncStatus.ERROR)
                    await self.observers.error(e)
                    return

                logger.warning(
                    "subscription_lost",
                    attempt=self.reconnect.attempts,
                    max_attempts=self.reconnect.max_attempts,
                    delay=delay,
                    error=error_details(e, "controller", "subscribe", owner_id=owner_id)
                )
                await self._set_status(SyncStatus.CONNECTING)

                if not await cancellable_sleep(delay, cancelled):
                    return

    async def _set_status(self, status: SyncStatus) -> None:
        if self._status is status:
            return
        previous, self._status = self._status, status
        logger.info("status_changed", previous=previous.value, status=status.value)
        await self.observers.status_changed(status)
