"""
Data models for offline-sync.
"""

from .records import (
    utcnow,
    content_hash,
    ChangeAction,
    MutationOperation,
    SyncStatus,
    RecordOperation,
    ChangeEvent,
    CachedRecord,
    PendingMutation,
    FetchedRecord,
    PushResult,
    SyncState,
)

__all__ = [
    'utcnow',
    'content_hash',
    'ChangeAction',
    'MutationOperation',
    'SyncStatus',
    'RecordOperation',
    'ChangeEvent',
    'CachedRecord',
    'PendingMutation',
    'FetchedRecord',
    'PushResult',
    'SyncState',
]
