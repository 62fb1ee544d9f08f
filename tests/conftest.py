"""
Pytest configuration and shared fixtures for offline-sync tests.
"""

import shutil
import tempfile
from pathlib import Path
from typing import AsyncGenerator, Generator, List

import pytest

from offline_sync.models.records import SyncStatus
from offline_sync.storage.memory_cache import MemoryLocalCache
from offline_sync.storage.sqlite_cache import SQLiteLocalCache
from offline_sync.sync.controller import SyncController
from offline_sync.sync.observer import CallbackObserver
from offline_sync.sync.session import AuthSession, StaticSessionProvider
from offline_sync.utils.config import SyncConfig
from offline_sync.utils.logging import setup_logging

from fixtures.remote_fixtures import OWNER, FakeRemoteStore


# Fast reconnection so failure tests finish in milliseconds.
TEST_CONFIG = {
    "reconnect": {
        "max_attempts": 3,
        "base_delay": 0.01,
        "max_delay": 0.05
    },
    "consumer": {
        "channel_size": 10
    }
}


@pytest.fixture(scope="session", autouse=True)
def configure_logging(tmp_path_factory):
    """Route structured logs to files so stdout stays clean."""
    setup_logging(
        log_level="DEBUG",
        log_dir=tmp_path_factory.mktemp("logs"),
        enable_console=False,
    )


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(**TEST_CONFIG)


@pytest.fixture
async def memory_cache() -> AsyncGenerator[MemoryLocalCache, None]:
    cache = MemoryLocalCache()
    await cache.initialize()
    yield cache
    await cache.close()


@pytest.fixture
async def sqlite_cache(temp_dir: Path) -> AsyncGenerator[SQLiteLocalCache, None]:
    cache = SQLiteLocalCache(temp_dir / "cache.db")
    await cache.initialize()
    yield cache
    await cache.close()


@pytest.fixture(params=["memory", "sqlite"])
async def cache(request, temp_dir: Path):
    """Every LocalCache implementation."""
    if request.param == "memory":
        local_cache = MemoryLocalCache()
    else:
        local_cache = SQLiteLocalCache(temp_dir / "cache.db")
    await local_cache.initialize()
    yield local_cache
    await local_cache.close()


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def session_provider() -> StaticSessionProvider:
    return StaticSessionProvider(AuthSession(OWNER))


@pytest.fixture
def status_log() -> List[SyncStatus]:
    return []


@pytest.fixture
async def controller(
    remote: FakeRemoteStore,
    memory_cache: MemoryLocalCache,
    session_provider: StaticSessionProvider,
    sync_config: SyncConfig,
    status_log: List[SyncStatus]
) -> AsyncGenerator[SyncController, None]:
    """Controller over the fake remote and an in-memory cache."""
    sync = SyncController(remote, memory_cache, session_provider, sync_config)
    sync.add_observer(CallbackObserver(on_status_change=status_log.append))
    yield sync
    await sync.stop()
