# ============================================================================
# HISTORY SERVICE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Service - Run history
# PURPOSE: Task history of a run, rebuilt from its event log
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
History Service

Reads a run's events and folds them into ordered task instances for
status and history views.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

from core.models import DagInstance, TaskInstance
from orchestrator.engine.reconstructor import reconstruct
from .workflow_service import WorkflowService

logger = logging.getLogger(__name__)


class EventSource(Protocol):
    async def list_for_run(self, dag_ins_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        ...


class HistoryService:
    """Service for reconstructed run history."""

    def __init__(self, event_repo: EventSource, workflow_service: WorkflowService):
        self.event_repo = event_repo
        self.workflow_service = workflow_service

    async def get_task_history(
        self,
        dag_ins: DagInstance,
        dag_id: Optional[str] = None,
    ) -> List[TaskInstance]:
        """
        Ordered task instances of a run.

        Args:
            dag_ins: The run
            dag_id: Definition id; defaults to dag_ins.dag_id

        Returns:
            One TaskInstance per TaskID, in first-status order
        """
        dag_id = dag_id or dag_ins.dag_id
        dag = self.workflow_service.get(dag_id) if dag_id else None
        if dag_id and dag is None:
            logger.warning(f"DAG {dag_id} unknown, reconstructing run {dag_ins.id} without it")

        events = await self.event_repo.list_for_run(dag_ins.id)
        tasks = reconstruct(events, dag_ins, dag)
        logger.info(f"Run {dag_ins.id}: {len(tasks)} tasks from {len(events)} events")
        return tasks


__all__ = ["HistoryService"]
