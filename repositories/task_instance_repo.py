# ============================================================================
# TASK INSTANCE REPOSITORY
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Repository - TaskInstance persistence
# PURPOSE: PostgreSQL TaskInstanceStore on flowcore.task_instances
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Task Instance Repository

PostgreSQL implementation of TaskInstanceStore. The unique constraint
on (dag_ins_id, task_id) makes batch_create reject duplicate TaskIDs;
the whole batch runs in one transaction.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.contracts import TaskInstanceStatus
from core.models import PreCheck, Step, TaskInstance, TaskMetadata
from .base import PATCHABLE_FIELDS, error_context
from .database import TABLE_TASK_INSTANCES

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id", "task_id", "dag_ins_id", "action_name", "name", "status", "reason",
    "depend_on", "params", "results", "pre_checks", "timeout_secs", "steps",
    "metadata", "created_at", "updated_at",
)

_JSON_COLUMNS = {"reason", "depend_on", "params", "results", "pre_checks", "steps", "metadata"}


def _column_value(task: TaskInstance, column: str) -> Any:
    """Python value of a task field, shaped for its column."""
    if column == "status":
        return task.status.value
    if column == "pre_checks":
        return Json({k: v.model_dump(mode="json") for k, v in task.pre_checks.items()})
    if column == "steps":
        return Json([s.model_dump(mode="json") for s in task.steps])
    if column == "metadata":
        return Json(task.metadata.model_dump()) if task.metadata else None
    value = getattr(task, column)
    if column in _JSON_COLUMNS:
        return Json(value) if value is not None else None
    return value


class TaskInstanceRepository:
    """Repository for TaskInstance entities."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def list_task_instances(self, dag_ins_id: str) -> List[TaskInstance]:
        """All tasks of a run, in creation order."""
        with error_context("list task instances", dag_ins_id):
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                result = await conn.execute(
                    sql.SQL("SELECT * FROM {} WHERE dag_ins_id = %s ORDER BY seq").format(
                        TABLE_TASK_INSTANCES
                    ),
                    (dag_ins_id,),
                )
                rows = await result.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def get_task_instance(self, task_ins_id: str) -> Optional[TaskInstance]:
        with error_context("get task instance", task_ins_id):
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                result = await conn.execute(
                    sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_TASK_INSTANCES),
                    (task_ins_id,),
                )
                row = await result.fetchone()
        return self._row_to_task(row) if row else None

    async def batch_create(self, tasks: Sequence[TaskInstance]) -> List[TaskInstance]:
        """
        Insert all tasks in one transaction.

        Raises:
            RepositoryError: including unique violations on (dag_ins_id, task_id)
        """
        if not tasks:
            return []

        query = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
            TABLE_TASK_INSTANCES,
            sql.SQL(", ").join(sql.Identifier(c) for c in _COLUMNS),
            sql.SQL(", ").join(sql.Placeholder(c) for c in _COLUMNS),
        )

        with error_context("batch create task instances", tasks[0].dag_ins_id):
            async with self.pool.connection() as conn:
                async with conn.transaction():
                    async with conn.cursor() as cur:
                        await cur.executemany(
                            query,
                            [{c: _column_value(t, c) for c in _COLUMNS} for t in tasks],
                        )

        logger.info(f"Created {len(tasks)} task instances for run {tasks[0].dag_ins_id}")
        return [t.model_copy(deep=True) for t in tasks]

    async def update(self, task: TaskInstance) -> None:
        """Write every mutable field of the task."""
        await self.patch(task, PATCHABLE_FIELDS + ("action_name", "name", "timeout_secs", "steps"))

    async def patch(self, task: TaskInstance, fields: Optional[Sequence[str]] = None) -> None:
        """Write only the named fields."""
        names = [f for f in (fields or PATCHABLE_FIELDS) if f in _COLUMNS]
        task.updated_at = datetime.utcnow()
        names.append("updated_at")

        query = sql.SQL("UPDATE {} SET {} WHERE id = %(id)s").format(
            TABLE_TASK_INSTANCES,
            sql.SQL(", ").join(
                sql.SQL("{} = {}").format(sql.Identifier(n), sql.Placeholder(n)) for n in names
            ),
        )
        values: Dict[str, Any] = {n: _column_value(task, n) for n in names}
        values["id"] = task.id

        with error_context("patch task instance", task.id):
            async with self.pool.connection() as conn:
                await conn.execute(query, values)
        logger.debug(f"Patched task {task.task_id} fields={names}")

    async def batch_delete(self, task_ins_ids: Sequence[str]) -> None:
        if not task_ins_ids:
            return
        with error_context("batch delete task instances"):
            async with self.pool.connection() as conn:
                await conn.execute(
                    sql.SQL("DELETE FROM {} WHERE id = ANY(%s)").format(TABLE_TASK_INSTANCES),
                    (list(task_ins_ids),),
                )
        logger.info(f"Deleted {len(task_ins_ids)} task instances")

    def _row_to_task(self, row: dict) -> TaskInstance:
        """Convert database row to TaskInstance model."""
        return TaskInstance(
            id=row["id"],
            task_id=row["task_id"],
            dag_ins_id=row["dag_ins_id"],
            action_name=row.get("action_name") or "",
            name=row.get("name") or "",
            status=TaskInstanceStatus(row["status"]),
            reason=row.get("reason"),
            depend_on=row.get("depend_on") or [],
            params=row.get("params") or {},
            results=row.get("results"),
            pre_checks={
                k: PreCheck(**v) for k, v in (row.get("pre_checks") or {}).items()
            },
            timeout_secs=row.get("timeout_secs") or 0,
            steps=[Step(**s) for s in row.get("steps") or []],
            metadata=TaskMetadata(**row["metadata"]) if row.get("metadata") else None,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


__all__ = ["TaskInstanceRepository"]
