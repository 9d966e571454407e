# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Service - Collaborators of the loop engine
# PURPOSE: Scheduling, tree caching, DAG definitions, run history
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Services Module

Usage:
    from services import WorkflowService, HistoryService

    workflows = WorkflowService("workflows/")
    history = HistoryService(EventRepository(pool), workflows)
    tasks = await history.get_task_history(dag_ins)
"""

from .scheduler import TaskScheduler, QueueScheduler
from .tree_cache import TaskTreeCache, InMemoryTaskTreeCache
from .workflow_service import WorkflowService
from .history_service import HistoryService

__all__ = [
    "TaskScheduler",
    "QueueScheduler",
    "TaskTreeCache",
    "InMemoryTaskTreeCache",
    "WorkflowService",
    "HistoryService",
]
