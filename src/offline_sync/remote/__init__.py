"""
Remote record store interface for offline-sync.
"""

from .base import RemoteRecordStore

__all__ = [
    'RemoteRecordStore',
]
