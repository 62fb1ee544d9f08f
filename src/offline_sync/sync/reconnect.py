"""
Reconnection policy for the change stream.

Exponential backoff with a fixed attempt budget. Waits are cancellable so a
caller-triggered stop or pause ends them immediately.
"""

import asyncio
from typing import Optional

from ..utils.config import ReconnectConfig
from ..utils.logging import get_logger


logger = get_logger("offline-sync.reconnect")


class ReconnectPolicy:
    """Tracks reconnection attempts and computes backoff delays."""

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.attempts = 0

    @classmethod
    def from_config(cls, config: ReconnectConfig) -> "ReconnectPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
        )

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def reset(self) -> None:
        self.attempts = 0

    def delay_for(self, attempt: int) -> float:
        """Backoff before the given attempt (1-based): base doubled per attempt."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def next_delay(self) -> Optional[float]:
        """Consume an attempt and return its delay, or None when exhausted."""
        if self.exhausted:
            return None
        self.attempts += 1
        return self.delay_for(self.attempts)


async def cancellable_sleep(delay: float, cancelled: asyncio.Event) -> bool:
    """Sleep for `delay` seconds unless `cancelled` is set first.

    Returns:
        True if the full delay elapsed, False if cancelled
    """
    if cancelled.is_set():
        return False
    try:
        await asyncio.wait_for(cancelled.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return True
    return False
