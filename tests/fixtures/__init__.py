"""
Test fixtures for offline-sync.

Provides a scriptable remote record store and event builders.
"""

from .remote_fixtures import (
    BASE_TIME,
    OTHER_OWNER,
    OWNER,
    FakeChangeStream,
    FakeRemoteStore,
    at,
    make_event,
)

__all__ = [
    "BASE_TIME",
    "OTHER_OWNER",
    "OWNER",
    "FakeChangeStream",
    "FakeRemoteStore",
    "at",
    "make_event",
]
