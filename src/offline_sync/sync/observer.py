"""
Sync notifications.

Observers receive status changes, record updates and deletions, and errors.
Notifications are delivered inline, from inside the processing loop: a slow
observer stalls the batch being applied.
"""

import asyncio
from typing import Any, Callable, List, Optional

from ..models.records import CachedRecord, SyncStatus
from ..utils.logging import get_logger


logger = get_logger("offline-sync.observer")


class SyncObserver:
    """Receives sync notifications. Override the methods of interest.

    Methods may be plain functions or coroutine functions.
    """

    def on_status_change(self, status: SyncStatus) -> Any:
        pass

    def on_record_updated(self, key: str, record: CachedRecord) -> Any:
        pass

    def on_record_deleted(self, key: str, record_type: str) -> Any:
        pass

    def on_error(self, error: BaseException) -> Any:
        pass


class CallbackObserver(SyncObserver):
    """Observer built from individual callables."""

    def __init__(
        self,
        on_status_change: Optional[Callable[[SyncStatus], Any]] = None,
        on_record_updated: Optional[Callable[[str, CachedRecord], Any]] = None,
        on_record_deleted: Optional[Callable[[str, str], Any]] = None,
        on_error: Optional[Callable[[BaseException], Any]] = None,
    ):
        self._on_status_change = on_status_change
        self._on_record_updated = on_record_updated
        self._on_record_deleted = on_record_deleted
        self._on_error = on_error

    def on_status_change(self, status):
        if self._on_status_change:
            return self._on_status_change(status)

    def on_record_updated(self, key, record):
        if self._on_record_updated:
            return self._on_record_updated(key, record)

    def on_record_deleted(self, key, record_type):
        if self._on_record_deleted:
            return self._on_record_deleted(key, record_type)

    def on_error(self, error):
        if self._on_error:
            return self._on_error(error)


async def invoke_callback(callback: Callable[..., Any], *args: Any) -> None:
    """Call a sync or async callback inline, logging anything it raises."""
    try:
        result = callback(*args)
        if asyncio.iscoroutine(result):
            await result
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(
            "callback_error",
            callback=getattr(callback, '__qualname__', repr(callback)),
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True
        )


class ObserverSet:
    """Fan-out of notifications to every registered observer."""

    def __init__(self):
        self._observers: List[SyncObserver] = []

    def add(self, observer: SyncObserver) -> SyncObserver:
        self._observers.append(observer)
        return observer

    def remove(self, observer: SyncObserver) -> bool:
        try:
            self._observers.remove(observer)
            return True
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._observers)

    async def status_changed(self, status: SyncStatus) -> None:
        for observer in list(self._observers):
            await invoke_callback(observer.on_status_change, status)

    async def record_updated(self, key: str, record: CachedRecord) -> None:
        for observer in list(self._observers):
            await invoke_callback(observer.on_record_updated, key, record)

    async def record_deleted(self, key: str, record_type: str) -> None:
        for observer in list(self._observers):
            await invoke_callback(observer.on_record_deleted, key, record_type)

    async def error(self, error: BaseException) -> None:
        for observer in list(self._observers):
            await invoke_callback(observer.on_error, error)
