"""Record, event and queue models shared by the sync components."""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def content_hash(payload: Dict[str, Any]) -> str:
    """Stable hash of a record payload."""
    content = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(content.encode()).hexdigest()[:32]


class ChangeAction(Enum):
    """Action carried by a change stream operation."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MutationOperation(Enum):
    """Operation of a queued local mutation."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncStatus(Enum):
    """Sync controller states."""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SYNCING = "syncing"
    PAUSED = "paused"
    ERROR = "error"

    @property
    def is_active(self) -> bool:
        """Whether a subscription is open or being opened."""
        return self in (SyncStatus.CONNECTING, SyncStatus.CONNECTED, SyncStatus.SYNCING)


@dataclass(frozen=True)
class RecordOperation:
    """One operation inside a change event."""
    action: ChangeAction
    record_type: str
    record_key: str
    content_hash: Optional[str] = None


@dataclass(frozen=True)
class ChangeEvent:
    """Notification that records changed in the remote store.

    Carries keys and hashes, not payloads. `cursor` is the stream position
    to persist once the event has been applied.
    """
    owner_id: str
    operations: Tuple[RecordOperation, ...]
    source_timestamp: datetime
    cursor: Optional[str] = None


@dataclass
class CachedRecord:
    """A record mirrored in the local cache."""
    key: str
    record_type: str
    payload: Dict[str, Any]
    content_hash: Optional[str] = None
    pending_sync: bool = False
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.content_hash is None:
            self.content_hash = content_hash(self.payload)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "key": self.key,
            "record_type": self.record_type,
            "payload": self.payload,
            "content_hash": self.content_hash,
            "pending_sync": self.pending_sync,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class PendingMutation:
    """A local write that has not been confirmed by the remote store."""
    key: str
    operation: MutationOperation
    record_type: str
    payload: Optional[Dict[str, Any]] = None
    enqueued_at: datetime = field(default_factory=utcnow)
    superseded: bool = False


@dataclass(frozen=True)
class FetchedRecord:
    """Full record returned by a remote fetch."""
    payload: Dict[str, Any]
    timestamp: Optional[datetime] = None
    content_hash: Optional[str] = None


@dataclass(frozen=True)
class PushResult:
    """Canonical key and version assigned by the remote store."""
    key: str
    version: Optional[str] = None


@dataclass(frozen=True)
class SyncState:
    """Aggregate sync state for status indicators."""
    status: SyncStatus
    last_sync_at: Optional[datetime]
    pending_count: int
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "status": self.status.value,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "pending_count": self.pending_count,
            "last_error": self.last_error,
        }


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
