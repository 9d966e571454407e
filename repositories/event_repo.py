# ============================================================================
# EVENT REPOSITORY
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Repository - DAG instance event log
# PURPOSE: Append and read rows of flowcore.dag_instance_events
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Event Repository

Append-only access to a run's event log. Reads return raw row dicts in
append order (event_id); decoding into typed events happens in
core.models.events.decode_event so a bad row never breaks the read.
"""

import logging
from typing import Any, Dict, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.models import TaskStatusEvent, TraceEvent, VariableEvent
from .base import error_context
from .database import TABLE_DAG_EVENTS

logger = logging.getLogger(__name__)

_WIRE_NAMES = {
    "task_status": "TaskStatus",
    "variable": "Variable",
    "trace": "Trace",
}


class EventRepository:
    """Repository for dag_instance_events rows."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def append(self, dag_ins_id: str, event) -> int:
        """
        Append one typed event.

        Returns:
            event_id of the new row
        """
        row: Dict[str, Any] = {
            "dag_ins_id": dag_ins_id,
            "type": _WIRE_NAMES[event.type],
            "task_id": None,
            "operator": None,
            "status": None,
            "name": None,
            "data": None,
            "timestamp": event.timestamp,
        }
        if isinstance(event, TaskStatusEvent):
            row.update(task_id=event.task_id, operator=event.operator, status=event.status.value)
        elif isinstance(event, (VariableEvent, TraceEvent)):
            row.update(name=event.name, data=Json(event.data))
            if isinstance(event, TraceEvent):
                row["task_id"] = event.task_id

        with error_context("append event", dag_ins_id):
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                result = await conn.execute(
                    sql.SQL("""
                    INSERT INTO {} (
                        dag_ins_id, type, task_id, operator, status, name, data, timestamp
                    ) VALUES (
                        %(dag_ins_id)s, %(type)s, %(task_id)s, %(operator)s,
                        %(status)s, %(name)s, %(data)s, %(timestamp)s
                    )
                    RETURNING event_id
                    """).format(TABLE_DAG_EVENTS),
                    row,
                )
                created = await result.fetchone()
        return created["event_id"]

    async def list_for_run(
        self,
        dag_ins_id: str,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Raw events of a run in append order.

        Args:
            dag_ins_id: Run identifier
            limit: Optional cap on the number of rows
        """
        query = sql.SQL("""
            SELECT type, task_id, operator, status, name, data, timestamp
            FROM {}
            WHERE dag_ins_id = %s
            ORDER BY event_id ASC
        """).format(TABLE_DAG_EVENTS)
        params: tuple = (dag_ins_id,)
        if limit is not None:
            query = query + sql.SQL(" LIMIT %s")
            params = (dag_ins_id, limit)

        with error_context("list events", dag_ins_id):
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                result = await conn.execute(query, params)
                rows = await result.fetchall()

        logger.debug(f"Read {len(rows)} events for run {dag_ins_id}")
        return [dict(row) for row in rows]


__all__ = ["EventRepository"]
