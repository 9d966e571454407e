# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Foundation - Core enums shared by every package
# PURPOSE: Task statuses, step operators, loop modes and event kinds
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: TaskInstanceStatus, StepOperator, LoopMode, EventKind, PreCheckAction
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the loop orchestration core.

These values cross every boundary:
- Store (task_instances table, JSON columns)
- Event log (dag_instance_events rows)
- Python (internal processing)
"""

from enum import Enum


# ============================================================================
# STATUS ENUMS
# ============================================================================

class TaskInstanceStatus(str, Enum):
    """
    Task instance lifecycle states.

    State transitions:
        INIT -> RUNNING -> SUCCESS
                        -> FAILED
             -> BLOCKED -> RUNNING
             -> SKIPPED (branch pre-check not met)
             -> CANCELED
    """
    INIT = "init"                # Created, waiting for dependencies / pickup
    RUNNING = "running"          # Picked up by the executor
    BLOCKED = "blocked"          # Waiting on something outside the DAG
    SUCCESS = "success"          # Finished successfully
    FAILED = "failed"            # Finished with error
    CANCELED = "canceled"        # Cancelled externally
    SKIPPED = "skipped"          # Branch not taken

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in (
            TaskInstanceStatus.SUCCESS,
            TaskInstanceStatus.FAILED,
            TaskInstanceStatus.CANCELED,
            TaskInstanceStatus.SKIPPED,
        )

    def is_satisfied(self) -> bool:
        """Check if dependents may run after this state."""
        return self in (TaskInstanceStatus.SUCCESS, TaskInstanceStatus.SKIPPED)

    def is_broken(self) -> bool:
        """Check if this is a failure state (failed or canceled)."""
        return self in (TaskInstanceStatus.FAILED, TaskInstanceStatus.CANCELED)


class LoopMode(str, Enum):
    """How a loop decides its iteration count."""
    LIMIT = "limit"              # Fixed number of iterations
    ARRAY = "array"              # One iteration per array element


class EventKind(str, Enum):
    """Kinds of records in the DAG instance event log."""
    TASK_STATUS = "task_status"
    VARIABLE = "variable"
    TRACE = "trace"


class PreCheckAction(str, Enum):
    """What the executor does when a pre-check condition is not met."""
    SKIP = "skip"


# ============================================================================
# OPERATORS
# ============================================================================

class StepOperator:
    """
    Control-flow operator names.

    Ordinary action operators are free-form strings
    (e.g. "@internal/tool/py3") and are not listed here.
    """
    PARALLEL = "@control/flow/parallel"
    BRANCH = "@control/flow/branches"
    LOOP = "@control/flow/loop"

    @classmethod
    def is_control(cls, operator: str) -> bool:
        """Check if operator is one of the control-flow operators."""
        return operator in (cls.PARALLEL, cls.BRANCH, cls.LOOP)


__all__ = [
    "TaskInstanceStatus",
    "LoopMode",
    "EventKind",
    "PreCheckAction",
    "StepOperator",
]
