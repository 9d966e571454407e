# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Repository - Data access layer
# PURPOSE: Task instance stores and the event log
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Repositories Module

Usage:
    from repositories import get_pool, TaskInstanceRepository

    pool = await get_pool()
    store = TaskInstanceRepository(pool)
    tasks = await store.list_task_instances("run-1")
"""

from .base import RepositoryError, TaskInstanceStore
from .memory_store import InMemoryTaskStore
from .database import get_pool, init_pool, close_pool, DatabasePool, ensure_schema
from .task_instance_repo import TaskInstanceRepository
from .event_repo import EventRepository

__all__ = [
    "RepositoryError",
    "TaskInstanceStore",
    "InMemoryTaskStore",
    "get_pool",
    "init_pool",
    "close_pool",
    "DatabasePool",
    "ensure_schema",
    "TaskInstanceRepository",
    "EventRepository",
]
