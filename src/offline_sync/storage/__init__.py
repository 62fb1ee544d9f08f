"""
Storage components for offline-sync.

This package provides:
- The LocalCache collaborator interface
- A durable SQLite implementation
- An in-process implementation for ephemeral sessions
"""

from .base import LocalCache
from .database import Database
from .memory_cache import MemoryLocalCache
from .sqlite_cache import SQLiteLocalCache

__all__ = [
    'LocalCache',
    'Database',
    'MemoryLocalCache',
    'SQLiteLocalCache',
]
