# ============================================================================
# ORCHESTRATOR ERRORS
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Orchestrator - Exception types
# PURPOSE: Errors raised by the loop handler, executor and task tree
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Errors

Only hard failures are exceptions. "Not ready yet" outcomes (pending
dependencies, previous iteration still running) are quiet returns.
"""

from typing import Optional


class LoopError(Exception):
    """Base error for loop orchestration."""

    def __init__(self, message: str, task_id: Optional[str] = None):
        self.message = message
        self.task_id = task_id
        super().__init__(message)


class DependencyFailedError(LoopError):
    """A dependency of a loop-control task ended in a failed state."""

    def __init__(self, task_id: str, dependency_id: str, status: Optional[str] = None):
        self.dependency_id = dependency_id
        self.status = status
        detail = f" ({status})" if status else ""
        super().__init__(
            f"Dependency '{dependency_id}' of loop task '{task_id}' failed{detail}",
            task_id=task_id,
        )


class IterationGenerationError(LoopError):
    """The store rejected or failed the batch create of an iteration's tasks."""

    def __init__(self, message: str, task_id: Optional[str] = None, iteration: Optional[int] = None):
        self.iteration = iteration
        super().__init__(message, task_id=task_id)


class TaskTreeError(Exception):
    """Task list cannot be organised into a tree (duplicate ids, cycles)."""
    pass


__all__ = [
    "LoopError",
    "DependencyFailedError",
    "IterationGenerationError",
    "TaskTreeError",
]
