"""
Offline Sync - offline-first synchronization core.

This package mirrors a remote, per-owner record store into a local cache
through a change-event stream, and replays locally queued mutations back
to the remote store when connectivity returns. It provides:
- A controller with a connect/pause/resume/stop state machine
- Last-write-wins conflict resolution on whole records
- Durable (SQLite) and in-process local caches
- Connectivity supervision for host online/visibility signals
"""

__version__ = "0.1.0"
__author__ = "Offline Sync Team"

from .models.records import CachedRecord, ChangeEvent, PendingMutation, SyncState, SyncStatus
from .remote.base import RemoteRecordStore
from .storage import LocalCache, MemoryLocalCache, SQLiteLocalCache
from .sync import (
    ConnectivitySupervisor,
    LocalEditor,
    StaticSessionProvider,
    SyncController,
    SyncObserver,
)
from .utils.errors import SyncError, SyncFailure

__all__ = [
    'CachedRecord',
    'ChangeEvent',
    'PendingMutation',
    'SyncState',
    'SyncStatus',
    'RemoteRecordStore',
    'LocalCache',
    'MemoryLocalCache',
    'SQLiteLocalCache',
    'ConnectivitySupervisor',
    'LocalEditor',
    'StaticSessionProvider',
    'SyncController',
    'SyncObserver',
    'SyncError',
    'SyncFailure',
]
