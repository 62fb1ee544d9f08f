"""
Unit tests for the outbound PendingMutationDrainer.
"""

import asyncio
from datetime import datetime

import pytest

from offline_sync.models.records import MutationOperation
from offline_sync.sync.drainer import PendingMutationDrainer
from offline_sync.sync.local_edits import LocalEditor
from offline_sync.sync.session import StaticSessionProvider
from offline_sync.utils.config import DrainerConfig
from offline_sync.utils.errors import (
    AuthenticationRequired,
    NotFound,
    SyncFailure,
    TransportError,
)

from fixtures.remote_fixtures import at
from utils.async_helpers import wait_for_condition


UPDATE = MutationOperation.UPDATE
DELETE = MutationOperation.DELETE


@pytest.fixture
def drainer(remote, memory_cache, session_provider):
    return PendingMutationDrainer(remote, memory_cache, session_provider)


async def queue_update(cache, key, payload, seconds):
    await cache.put(key, "recipe", payload, pending_sync=True, updated_at=at(seconds))
    await cache.enqueue_mutation(key, UPDATE, payload, "recipe", enqueued_at=at(seconds))


async def queue_delete(cache, key, seconds):
    await cache.delete(key)
    await cache.enqueue_mutation(key, DELETE, None, "recipe", enqueued_at=at(seconds))


class TestDrain:
    """Test drain outcomes."""

    @pytest.mark.asyncio
    async def test_empty_queue(self, drainer, remote):
        assert await drainer.drain() == 0
        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_requires_session(self, remote, memory_cache):
        drainer = PendingMutationDrainer(remote, memory_cache, StaticSessionProvider())
        await queue_update(memory_cache, "a", {"v": 1}, 1)

        with pytest.raises(AuthenticationRequired):
            await drainer.drain()

        assert remote.calls == []
        assert await memory_cache.count_pending_mutations() == 1

    @pytest.mark.asyncio
    async def test_non_retryable_failure_dropped_others_applied(self, drainer, remote, memory_cache):
        remote.set_record("a", {"v": 0})
        remote.set_record("c", {"v": 0})
        remote.push_errors["b"] = NotFound("b was deleted remotely")
        await queue_update(memory_cache, "a", {"v": 1}, 1)
        await queue_update(memory_cache, "b", {"v": 1}, 2)
        await queue_delete(memory_cache, "c", 3)

        applied = await drainer.drain()

        assert applied == 2
        assert await memory_cache.count_pending_mutations() == 0
        assert (await memory_cache.get("a")).pending_sync is False
        assert (await memory_cache.get("b")).pending_sync is False
        assert await memory_cache.get("c") is None
        assert "c" not in remote.records
        assert drainer.last_result.discarded == 1

    @pytest.mark.asyncio
    async def test_mutations_replayed_oldest_first(self, drainer, remote, memory_cache):
        await queue_update(memory_cache, "late", {"v": 1}, 30)
        await queue_update(memory_cache, "early", {"v": 1}, 10)
        await queue_delete(memory_cache, "middle", 20)

        await drainer.drain()

        assert [c[1] for c in remote.calls] == ["early", "middle", "late"]

    @pytest.mark.asyncio
    async def test_retryable_failure_stays_queued(self, drainer, remote, memory_cache):
        remote.push_errors["b"] = TransportError("offline")
        await queue_update(memory_cache, "a", {"v": 1}, 1)
        await queue_update(memory_cache, "b", {"v": 1}, 2)

        applied = await drainer.drain()

        assert applied == 1
        assert await memory_cache.get_pending_mutation("a") is None
        assert (await memory_cache.get_pending_mutation("b")).payload == {"v": 1}
        assert (await memory_cache.get("b")).pending_sync is True

    @pytest.mark.asyncio
    async def test_all_failed_raises_sync_failure(self, drainer, remote, memory_cache):
        remote.push_errors["a"] = TransportError("offline")
        remote.push_errors["b"] = RuntimeError("socket exploded")
        await queue_update(memory_cache, "a", {"v": 1}, 1)
        await queue_update(memory_cache, "b", {"v": 1}, 2)

        with pytest.raises(SyncFailure) as exc_info:
            await drainer.drain()

        assert exc_info.value.attempted == 2
        assert len(exc_info.value.errors) == 2
        # Unclassified errors count as retryable.
        assert await memory_cache.count_pending_mutations() == 2

    @pytest.mark.asyncio
    async def test_update_stores_remote_version(self, drainer, remote, memory_cache):
        remote.set_record("a", {"v": 0})
        await queue_update(memory_cache, "a", {"v": 1}, 1)

        await drainer.drain()

        record = await memory_cache.get("a")
        assert record.payload == {"v": 1}
        assert record.content_hash.startswith("v")
        assert record.updated_at == at(1)

    @pytest.mark.asyncio
    async def test_create_rejected_update_and_delete(self, drainer, remote, memory_cache):
        editor = LocalEditor(memory_cache)
        remote.set_record("c", {"v": 0})
        remote.push_errors["b"] = NotFound("b was deleted remotely")
        await memory_cache.put("b", "recipe", {"v": 0})
        await memory_cache.put("c", "recipe", {"v": 0})
        local = await editor.create("recipe", {"title": "A"})
        await editor.update("b", {"v": 1})
        await editor.delete("c")

        applied = await drainer.drain()

        records = {r.key: r for r in await memory_cache.list_records()}
        assert applied == 2
        assert local.key not in records
        assert records["recipe/r1"].payload == {"title": "A"}
        assert records["recipe/r1"].pending_sync is False
        assert records["b"].pending_sync is False
        assert "c" not in records
        assert await memory_cache.count_pending_mutations() == 0
        assert [c[0] for c in remote.calls] == ["create", "update", "delete"]
        assert drainer.last_result.discarded == 1

    @pytest.mark.asyncio
    async def test_mixed_naive_and_aware_enqueue_times(self, drainer, remote, memory_cache):
        await queue_update(memory_cache, "aware", {"v": 1}, 2)
        await memory_cache.put("naive", "recipe", {"v": 1}, pending_sync=True)
        await memory_cache.enqueue_mutation(
            "naive", UPDATE, {"v": 1}, "recipe", enqueued_at=datetime(2024, 1, 1, 12, 0, 1)
        )

        assert await drainer.drain() == 2
        assert [c[1] for c in remote.calls] == ["naive", "aware"]


class TestCreate:
    """Test replay of local creates."""

    @pytest.mark.asyncio
    async def test_provisional_key_replaced(self, drainer, remote, memory_cache):
        editor = LocalEditor(memory_cache)
        local = await editor.create("recipe", {"title": "Soup"})

        applied = await drainer.drain()

        records = await memory_cache.list_records()
        assert applied == 1
        assert await memory_cache.get(local.key) is None
        assert [r.key for r in records] == ["recipe/r1"]
        assert records[0].payload == {"title": "Soup"}
        assert records[0].pending_sync is False
        assert remote.records["recipe/r1"].payload == {"title": "Soup"}
        assert await memory_cache.count_pending_mutations() == 0

    @pytest.mark.asyncio
    async def test_edit_during_create_moves_to_canonical_key(self, drainer, remote, memory_cache):
        editor = LocalEditor(memory_cache)
        local = await editor.create("recipe", {"title": "Soup"})
        remote.push_gate = asyncio.Event()

        task = asyncio.create_task(drainer.drain())
        await wait_for_condition(lambda: remote.calls_of("create"))
        await editor.update(local.key, {"title": "Better soup"})
        remote.push_gate.set()
        assert await task == 1

        mutation = await memory_cache.get_pending_mutation("recipe/r1")
        assert await memory_cache.get(local.key) is None
        assert await memory_cache.get_pending_mutation(local.key) is None
        assert mutation.operation is UPDATE
        assert mutation.payload == {"title": "Better soup"}
        assert (await memory_cache.get("recipe/r1")).pending_sync is True

        remote.push_gate = None
        assert await drainer.drain() == 1
        assert remote.records["recipe/r1"].payload == {"title": "Better soup"}

    @pytest.mark.asyncio
    async def test_delete_during_create_queues_remote_delete(self, drainer, remote, memory_cache):
        editor = LocalEditor(memory_cache)
        local = await editor.create("recipe", {"title": "Soup"})
        remote.push_gate = asyncio.Event()

        task = asyncio.create_task(drainer.drain())
        await wait_for_condition(lambda: remote.calls_of("create"))
        await editor.delete(local.key)
        remote.push_gate.set()
        await task

        mutation = await memory_cache.get_pending_mutation("recipe/r1")
        assert mutation.operation is DELETE
        assert await memory_cache.get("recipe/r1") is None


class TestConcurrency:
    """Test drains overlapping with local edits and other drains."""

    @pytest.mark.asyncio
    async def test_concurrent_drain_returns_zero(self, drainer, remote, memory_cache):
        await queue_update(memory_cache, "a", {"v": 1}, 1)
        remote.push_gate = asyncio.Event()

        first = asyncio.create_task(drainer.drain())
        await wait_for_condition(lambda: drainer.is_draining)

        assert await drainer.drain() == 0

        remote.push_gate.set()
        assert await first == 1
        assert len(remote.calls_of("update")) == 1

    @pytest.mark.asyncio
    async def test_edit_during_update_stays_queued(self, drainer, remote, memory_cache):
        await queue_update(memory_cache, "a", {"v": 1}, 1)
        remote.push_gate = asyncio.Event()
        editor = LocalEditor(memory_cache)

        task = asyncio.create_task(drainer.drain())
        await wait_for_condition(lambda: remote.calls_of("update"))
        await editor.update("a", {"v": 2})
        remote.push_gate.set()
        await task

        mutation = await memory_cache.get_pending_mutation("a")
        record = await memory_cache.get("a")
        assert mutation.payload == {"v": 2}
        assert record.payload == {"v": 2}
        assert record.pending_sync is True


class TestSuperseded:
    """Test handling of edits overtaken by a newer remote version."""

    @pytest.mark.asyncio
    async def test_discarded_by_default(self, drainer, remote, memory_cache):
        await memory_cache.put("u1", "recipe", {"title": "remote"}, pending_sync=True, updated_at=at(10))
        await memory_cache.enqueue_mutation("u1", UPDATE, {"title": "local"}, "recipe", enqueued_at=at(0))
        await memory_cache.mark_mutation_superseded("u1")

        applied = await drainer.drain()

        record = await memory_cache.get("u1")
        assert applied == 0
        assert remote.calls == []
        assert record.payload == {"title": "remote"}
        assert record.pending_sync is False
        assert await memory_cache.get_pending_mutation("u1") is None
        assert drainer.last_result.superseded == 1

    @pytest.mark.asyncio
    async def test_keep_policy_pushes_anyway(self, remote, memory_cache, session_provider):
        drainer = PendingMutationDrainer(
            remote, memory_cache, session_provider,
            DrainerConfig(superseded_policy="keep")
        )
        await memory_cache.put("u1", "recipe", {"title": "remote"}, pending_sync=True, updated_at=at(10))
        await memory_cache.enqueue_mutation("u1", UPDATE, {"title": "local"}, "recipe", enqueued_at=at(0))
        await memory_cache.mark_mutation_superseded("u1")

        assert await drainer.drain() == 1
        record = await memory_cache.get("u1")
        assert remote.calls_of("update") == [("update", "u1", {"title": "local"})]
        assert record.pending_sync is False
        assert record.payload == {"title": "local"}
        assert record.payload == remote.records["u1"].payload

    @pytest.mark.asyncio
    async def test_superseded_delete_still_pushed(self, drainer, remote, memory_cache):
        await memory_cache.enqueue_mutation("u1", DELETE, None, "recipe", enqueued_at=at(0))
        await memory_cache.mark_mutation_superseded("u1")

        assert await drainer.drain() == 1
        assert remote.calls_of("delete") == [("delete", "u1")]
