# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Orchestrator - Loop engine entry points
# PURPOSE: Advance loop-control tasks and materialize their iterations
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Module

Usage:
    from orchestrator import LoopHandler

    handler = LoopHandler(store, scheduler, tree_cache)
    outcome = await handler.handle(dag_ins, loop_task)
"""

from .errors import LoopError, DependencyFailedError, IterationGenerationError, TaskTreeError
from .loop_executor import LoopExecutor
from .loop_handler import LoopHandler, LoopOutcome

__all__ = [
    "LoopHandler",
    "LoopOutcome",
    "LoopExecutor",
    "LoopError",
    "DependencyFailedError",
    "IterationGenerationError",
    "TaskTreeError",
]
