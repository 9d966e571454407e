# ============================================================================
# STORE CONTRACT
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Repository - Task instance store contract
# PURPOSE: Interface every task store implements, plus its error type
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Store Contract

The loop engine only talks to a TaskInstanceStore. Two implementations
ship with the repo:

- InMemoryTaskStore (repositories.memory_store): tests and single-process runs
- TaskInstanceRepository (repositories.task_instance_repo): PostgreSQL

No transaction spans several calls. batch_create must reject a TaskID
that already exists in the same run; the engine relies on that to stop
two executors from creating the same iteration twice.
"""

import logging
from contextlib import contextmanager
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from core.models import TaskInstance

logger = logging.getLogger(__name__)

# Fields a patch may touch when the caller names none
PATCHABLE_FIELDS = (
    "status",
    "reason",
    "depend_on",
    "params",
    "results",
    "pre_checks",
    "metadata",
)


class RepositoryError(Exception):
    """Base exception for store operations."""

    def __init__(self, message: str, operation: Optional[str] = None, entity_id: Optional[str] = None):
        self.operation = operation
        self.entity_id = entity_id
        super().__init__(message)


@contextmanager
def error_context(operation: str, entity_id: Optional[str] = None):
    """
    Wrap store I/O so every failure surfaces as RepositoryError.

    Example:
        with error_context("batch create", dag_ins_id):
            await cur.execute(...)
    """
    try:
        yield
    except RepositoryError:
        raise
    except Exception as e:
        error_msg = f"{operation} failed"
        if entity_id:
            error_msg += f" for {entity_id}"
        error_msg += f": {e}"
        logger.error(error_msg)
        raise RepositoryError(error_msg, operation=operation, entity_id=entity_id) from e


@runtime_checkable
class TaskInstanceStore(Protocol):
    """Persistence for task instances of DAG runs."""

    async def list_task_instances(self, dag_ins_id: str) -> List[TaskInstance]:
        """All tasks of a run, in creation order."""
        ...

    async def get_task_instance(self, task_ins_id: str) -> Optional[TaskInstance]:
        ...

    async def batch_create(self, tasks: Sequence[TaskInstance]) -> List[TaskInstance]:
        """Create all tasks or none; duplicate (dag_ins_id, task_id) raises RepositoryError."""
        ...

    async def update(self, task: TaskInstance) -> None:
        """Replace the stored task with this one."""
        ...

    async def patch(self, task: TaskInstance, fields: Optional[Sequence[str]] = None) -> None:
        """Write only the named fields (PATCHABLE_FIELDS when None)."""
        ...

    async def batch_delete(self, task_ins_ids: Sequence[str]) -> None:
        ...


__all__ = [
    "RepositoryError",
    "TaskInstanceStore",
    "error_context",
    "PATCHABLE_FIELDS",
]
