# ============================================================================
# POSTGRES REPOSITORY TESTS
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Tests - psycopg repositories without a database
# PURPOSE: Verify row mapping, error wrapping and connection settings
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Postgres Repository Tests

The pool is a MagicMock; nothing connects to PostgreSQL.

Covers:
1. Connection string from DATABASE_URL / POSTGRES_*
2. Credentials stripped for logging
3. Task rows mapped to TaskInstance
4. Driver failures wrapped in RepositoryError
5. Event rows appended with wire type names and read in order
6. Pool lifecycle and schema creation

Run with:
    pytest tests/test_repositories.py -v
"""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.contracts import TaskInstanceStatus
from core.models import TaskInstance, TaskStatusEvent, VariableEvent
from repositories import EventRepository, RepositoryError, TaskInstanceRepository
from repositories import database
from repositories.database import _safe_conninfo, get_connection_string


# ============================================================================
# FIXTURES
# ============================================================================

def mock_pool(result=None, error=None):
    """Pool whose connections execute() to `result` or raise `error`."""
    conn = MagicMock()
    conn.execute = AsyncMock(return_value=result, side_effect=error)
    pool = MagicMock()
    pool.connection.return_value.__aenter__.return_value = conn
    return pool, conn


def mock_result(rows):
    result = MagicMock()
    result.fetchall = AsyncMock(return_value=rows)
    result.fetchone = AsyncMock(return_value=rows[0] if rows else None)
    return result


@pytest.fixture
def task_row():
    now = datetime(2026, 10, 19, 12, 0, 0)
    return {
        "id": "abc",
        "task_id": "L_i0_sa",
        "dag_ins_id": "run-1",
        "action_name": "@internal/tool/py3",
        "name": "Work",
        "status": "success",
        "reason": None,
        "depend_on": ["L"],
        "params": {"page": 0},
        "results": {"ok": True},
        "pre_checks": {"L_i0_sb_0_0": {"conditions": [{"op": "eq"}], "act": "skip"}},
        "timeout_secs": 3600,
        "steps": [],
        "metadata": {"duration": 12, "attempts": 0, "max_retry": 3},
        "created_at": now,
        "updated_at": now,
    }


# ============================================================================
# CONNECTION SETTINGS
# ============================================================================

class TestConnectionString:
    """Environment driven settings."""

    def test_database_url_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/flow")
        monkeypatch.setenv("POSTGRES_HOST", "ignored")
        assert get_connection_string() == "postgresql://u:p@db:5432/flow"

    def test_components(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("POSTGRES_HOST", "db")
        monkeypatch.setenv("POSTGRES_DB", "flow")
        monkeypatch.setenv("POSTGRES_USER", "svc")
        monkeypatch.setenv("POSTGRES_PASSWORD", "secret")
        monkeypatch.delenv("POSTGRES_PORT", raising=False)
        monkeypatch.delenv("POSTGRES_SSLMODE", raising=False)
        assert get_connection_string() == "postgresql://svc:secret@db:5432/flow?sslmode=prefer"

    def test_safe_conninfo(self):
        assert _safe_conninfo("postgresql://svc:secret@db:5432/flow") == "db:5432/flow"
        assert _safe_conninfo("host=db password=secret") == "host=db password=***"


# ============================================================================
# TASK INSTANCES
# ============================================================================

class TestTaskInstanceRepository:
    """Row mapping and error wrapping."""

    def test_list_maps_rows(self, task_row):
        pool, conn = mock_pool(mock_result([task_row]))
        tasks = asyncio.run(TaskInstanceRepository(pool).list_task_instances("run-1"))

        task = tasks[0]
        assert task.task_id == "L_i0_sa"
        assert task.status == TaskInstanceStatus.SUCCESS
        assert task.pre_checks["L_i0_sb_0_0"].conditions == [{"op": "eq"}]
        assert task.metadata.duration == 12
        assert conn.execute.await_args.args[1] == ("run-1",)

    def test_get_missing(self):
        pool, _ = mock_pool(mock_result([]))
        assert asyncio.run(TaskInstanceRepository(pool).get_task_instance("nope")) is None

    def test_driver_error_wrapped(self):
        pool, _ = mock_pool(error=RuntimeError("connection reset"))
        with pytest.raises(RepositoryError) as exc_info:
            asyncio.run(TaskInstanceRepository(pool).list_task_instances("run-1"))
        assert exc_info.value.operation == "list task instances"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_patch_sends_named_fields(self):
        pool, conn = mock_pool()
        task = TaskInstance(id="abc", task_id="A", dag_ins_id="run-1", status=TaskInstanceStatus.INIT)
        asyncio.run(TaskInstanceRepository(pool).patch(task, ["status", "reason"]))

        values = conn.execute.await_args.args[1]
        assert values["id"] == "abc"
        assert values["status"] == "init"
        assert set(values) == {"id", "status", "reason", "updated_at"}

    def test_batch_create_empty(self):
        pool, _ = mock_pool()
        assert asyncio.run(TaskInstanceRepository(pool).batch_create([])) == []
        pool.connection.assert_not_called()


# ============================================================================
# EVENTS
# ============================================================================

class TestEventRepository:
    """Append and read of run events."""

    def test_append_status_event(self):
        pool, conn = mock_pool(mock_result([{"event_id": 7}]))
        event = TaskStatusEvent(task_id="1", operator="op", status="running", timestamp=5)

        event_id = asyncio.run(EventRepository(pool).append("run-1", event))

        row = conn.execute.await_args.args[1]
        assert event_id == 7
        assert row["type"] == "TaskStatus"
        assert row["status"] == "running"
        assert row["data"] is None

    def test_append_variable_event(self):
        pool, conn = mock_pool(mock_result([{"event_id": 8}]))
        event = VariableEvent(name="__1", data={"x": 1})

        asyncio.run(EventRepository(pool).append("run-1", event))

        row = conn.execute.await_args.args[1]
        assert row["type"] == "Variable"
        assert row["task_id"] is None
        assert row["data"].obj == {"x": 1}

    def test_list_for_run_with_limit(self):
        rows = [{"type": "TaskStatus", "task_id": "1", "status": "running"}]
        pool, conn = mock_pool(mock_result(rows))

        events = asyncio.run(EventRepository(pool).list_for_run("run-1", limit=10))

        assert events == rows
        assert conn.execute.await_args.args[1] == ("run-1", 10)


# ============================================================================
# POOL LIFECYCLE
# ============================================================================

class TestPoolLifecycle:
    """Global pool init / reuse / close."""

    @pytest.fixture
    def pool_class(self, monkeypatch):
        pool_class = MagicMock()
        pool_class.return_value.open = AsyncMock()
        pool_class.return_value.close = AsyncMock()
        monkeypatch.setattr(database, "AsyncConnectionPool", pool_class)
        monkeypatch.setattr(database, "_pool", None)
        return pool_class

    def test_init_reuse_close(self, pool_class):
        async def scenario():
            first = await database.init_pool(min_size=1, max_size=3, connection_string="postgresql://db/x")
            again = await database.get_pool()
            await database.close_pool()
            return first, again

        first, again = asyncio.run(scenario())
        assert first is again
        assert pool_class.call_args.kwargs["min_size"] == 1
        assert pool_class.call_args.kwargs["open"] is False
        first.open.assert_awaited_once()
        first.close.assert_awaited_once()
        assert database._pool is None

    def test_database_pool_context(self, pool_class):
        async def scenario():
            async with database.DatabasePool(connection_string="postgresql://db/x") as pool:
                assert database._pool is pool
            return pool

        pool = asyncio.run(scenario())
        pool.close.assert_awaited_once()
        assert database._pool is None

    def test_ensure_schema_runs_ddl(self):
        pool, conn = mock_pool()
        asyncio.run(database.ensure_schema(pool))
        conn.execute.assert_awaited_once_with(database.SCHEMA_DDL)
