"""
Async testing helpers.
"""

import asyncio
from typing import Any, Callable, Coroutine, TypeVar

import pytest

T = TypeVar('T')


async def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = 2.0,
    interval: float = 0.01,
    message: str = "Condition not met"
) -> None:
    """Wait for a sync condition to become true."""
    loop = asyncio.get_running_loop()
    start = loop.time()

    while loop.time() - start < timeout:
        if condition():
            return
        await asyncio.sleep(interval)

    raise TimeoutError(f"{message} after {timeout}s")


async def assert_completes_within(
    coro: Coroutine[Any, Any, T],
    seconds: float,
    message: str = "Coroutine did not complete within timeout"
) -> T:
    """Assert that a coroutine completes within a time limit."""
    try:
        return await asyncio.wait_for(coro, timeout=seconds)
    except asyncio.TimeoutError:
        pytest.fail(f"{message} ({seconds}s)")
