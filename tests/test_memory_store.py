# ============================================================================
# IN-MEMORY STORE TESTS
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Tests - Process-local TaskInstanceStore
# PURPOSE: Verify unique TaskIDs, copy semantics and patching
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
In-Memory Store Tests

Covers:
1. batch_create rejects repeated TaskIDs atomically
2. Reads return copies
3. patch writes only the named fields
4. Missing tasks on update/patch raise RepositoryError
5. batch_delete ignores unknown ids

Run with:
    pytest tests/test_memory_store.py -v
"""

import asyncio

import pytest

from core.contracts import TaskInstanceStatus
from core.models import TaskInstance
from repositories import InMemoryTaskStore, RepositoryError, TaskInstanceStore


def make_task(task_id, dag_ins_id="run-1", **kwargs):
    return TaskInstance(task_id=task_id, dag_ins_id=dag_ins_id, **kwargs)


class TestBatchCreate:
    """Unique TaskIDs per run."""

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryTaskStore(), TaskInstanceStore)

    def test_existing_task_id_rejected(self):
        async def scenario():
            store = InMemoryTaskStore([make_task("A")])
            with pytest.raises(RepositoryError) as exc_info:
                await store.batch_create([make_task("B"), make_task("A")])
            return store, exc_info.value

        store, error = asyncio.run(scenario())
        assert error.entity_id == "A"
        # Nothing from the rejected batch was written
        assert len(store) == 1

    def test_repeat_within_batch_rejected(self):
        async def scenario():
            store = InMemoryTaskStore()
            with pytest.raises(RepositoryError):
                await store.batch_create([make_task("A"), make_task("A")])
            return len(store)

        assert asyncio.run(scenario()) == 0

    def test_same_task_id_in_other_run(self):
        async def scenario():
            store = InMemoryTaskStore([make_task("A")])
            await store.batch_create([make_task("A", dag_ins_id="run-2")])
            return [t.task_id for t in await store.list_task_instances("run-2")]

        assert asyncio.run(scenario()) == ["A"]


class TestReadWrite:
    """Copies, updates, patches, deletes."""

    def test_reads_are_copies(self):
        async def scenario():
            store = InMemoryTaskStore([make_task("A", id="a")])
            task = await store.get_task_instance("a")
            task.params["x"] = 1
            return await store.get_task_instance("a")

        assert asyncio.run(scenario()).params == {}

    def test_patch_named_fields_only(self):
        async def scenario():
            store = InMemoryTaskStore([make_task("A", id="a")])
            task = await store.get_task_instance("a")
            task.status = TaskInstanceStatus.SUCCESS
            task.params["x"] = 1
            await store.patch(task, ["status"])
            return await store.get_task_instance("a")

        stored = asyncio.run(scenario())
        assert stored.status == TaskInstanceStatus.SUCCESS
        assert stored.params == {}

    def test_update_missing_task(self):
        with pytest.raises(RepositoryError):
            asyncio.run(InMemoryTaskStore().update(make_task("ghost")))

    def test_patch_missing_task(self):
        with pytest.raises(RepositoryError):
            asyncio.run(InMemoryTaskStore().patch(make_task("ghost")))

    def test_batch_delete(self):
        async def scenario():
            store = InMemoryTaskStore([make_task("A", id="a"), make_task("B", id="b")])
            await store.batch_delete(["a", "unknown"])
            return [t.task_id for t in await store.list_task_instances("run-1")]

        assert asyncio.run(scenario()) == ["B"]
