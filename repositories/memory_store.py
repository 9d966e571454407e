# ============================================================================
# IN-MEMORY TASK STORE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Repository - Process-local TaskInstanceStore
# PURPOSE: Store for tests and single-process runs
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
In-Memory Task Store

Insertion-ordered, asyncio-safe. Every read and write goes through deep
copies so callers never share state with the store.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from core.models import TaskInstance
from repositories.base import PATCHABLE_FIELDS, RepositoryError

logger = logging.getLogger(__name__)


class InMemoryTaskStore:
    """TaskInstanceStore kept in a dict keyed by store id."""

    def __init__(self, tasks: Optional[Sequence[TaskInstance]] = None):
        self._tasks: Dict[str, TaskInstance] = {}
        self._lock = asyncio.Lock()
        for task in tasks or []:
            self._tasks[task.id] = task.model_copy(deep=True)

    def _find_task_id(self, dag_ins_id: str, task_id: str) -> Optional[TaskInstance]:
        for task in self._tasks.values():
            if task.dag_ins_id == dag_ins_id and task.task_id == task_id:
                return task
        return None

    async def list_task_instances(self, dag_ins_id: str) -> List[TaskInstance]:
        async with self._lock:
            return [
                task.model_copy(deep=True)
                for task in self._tasks.values()
                if task.dag_ins_id == dag_ins_id
            ]

    async def get_task_instance(self, task_ins_id: str) -> Optional[TaskInstance]:
        async with self._lock:
            task = self._tasks.get(task_ins_id)
            return task.model_copy(deep=True) if task else None

    async def batch_create(self, tasks: Sequence[TaskInstance]) -> List[TaskInstance]:
        async with self._lock:
            seen = set()
            for task in tasks:
                key = (task.dag_ins_id, task.task_id)
                if key in seen or self._find_task_id(*key) is not None:
                    raise RepositoryError(
                        f"Task {task.task_id} already exists in run {task.dag_ins_id}",
                        operation="batch_create",
                        entity_id=task.task_id,
                    )
                if task.id in self._tasks:
                    raise RepositoryError(
                        f"Task id {task.id} already exists",
                        operation="batch_create",
                        entity_id=task.id,
                    )
                seen.add(key)

            created = []
            for task in tasks:
                stored = task.model_copy(deep=True)
                self._tasks[stored.id] = stored
                created.append(stored.model_copy(deep=True))

            logger.debug(f"Created {len(created)} task instances")
            return created

    async def update(self, task: TaskInstance) -> None:
        async with self._lock:
            if task.id not in self._tasks:
                raise RepositoryError(
                    f"Task {task.id} not found", operation="update", entity_id=task.id
                )
            stored = task.model_copy(deep=True)
            stored.updated_at = datetime.utcnow()
            self._tasks[task.id] = stored

    async def patch(self, task: TaskInstance, fields: Optional[Sequence[str]] = None) -> None:
        async with self._lock:
            stored = self._tasks.get(task.id)
            if stored is None:
                raise RepositoryError(
                    f"Task {task.id} not found", operation="patch", entity_id=task.id
                )
            values = task.model_copy(deep=True)
            for name in fields or PATCHABLE_FIELDS:
                setattr(stored, name, getattr(values, name))
            stored.updated_at = datetime.utcnow()

    async def batch_delete(self, task_ins_ids: Sequence[str]) -> None:
        async with self._lock:
            for task_ins_id in task_ins_ids:
                self._tasks.pop(task_ins_id, None)

    def __len__(self) -> int:
        return len(self._tasks)


__all__ = ["InMemoryTaskStore"]
