"""
Last-write-wins conflict resolution for inbound records.

Resolution is per whole record under a total order on timestamps; there is
no field-level merge.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from ..models.records import CachedRecord, PendingMutation, as_utc


class Resolution(Enum):
    """Outcome of comparing an inbound record with the cached one."""
    APPLY = "apply"            # nothing pending locally, overwrite
    REMOTE_WINS = "remote_wins"  # pending local edit is older, overwrite
    LOCAL_WINS = "local_wins"    # pending local edit is newer or equal, discard inbound


@dataclass(frozen=True)
class ConflictDecision:
    resolution: Resolution
    local_timestamp: Optional[datetime] = None
    remote_timestamp: Optional[datetime] = None

    @property
    def overwrite(self) -> bool:
        """Whether the inbound record replaces the cached one."""
        return self.resolution is not Resolution.LOCAL_WINS

    @property
    def supersedes(self) -> bool:
        """Whether a queued local edit was overtaken by the inbound record."""
        return self.resolution is Resolution.REMOTE_WINS

    @property
    def is_conflict(self) -> bool:
        return self.resolution is not Resolution.APPLY


def resolve(
    existing: Optional[CachedRecord],
    remote_timestamp: datetime,
    queued: Optional[PendingMutation] = None,
) -> ConflictDecision:
    """Decide whether an inbound create/update replaces the cached record.

    A queued local delete leaves no cached record behind; it is compared by
    its enqueue time.

    Args:
        existing: The cached record for the key, if any
        remote_timestamp: Timestamp of the inbound version
        queued: The queued local mutation for the key, if any

    Returns:
        ConflictDecision describing the outcome
    """
    if existing is not None and (existing.pending_sync or queued is not None):
        local = as_utc(existing.updated_at)
    elif existing is None and queued is not None:
        local = as_utc(queued.enqueued_at)
    else:
        return ConflictDecision(Resolution.APPLY, remote_timestamp=remote_timestamp)

    remote = as_utc(remote_timestamp)

    if remote > local:
        return ConflictDecision(Resolution.REMOTE_WINS, local, remote)

    return ConflictDecision(Resolution.LOCAL_WINS, local, remote)
