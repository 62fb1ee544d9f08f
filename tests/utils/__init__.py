"""
Test utilities for offline-sync.
"""

from .async_helpers import assert_completes_within, wait_for_condition

__all__ = [
    "assert_completes_within",
    "wait_for_condition",
]
