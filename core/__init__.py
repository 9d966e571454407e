# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Core module initialization
# PURPOSE: Export core contracts and models
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================

from core.contracts import TaskInstanceStatus, StepOperator, LoopMode, EventKind
from core.models import (
    DagDefinition,
    Step,
    Branch,
    DagInstance,
    ShareData,
    ShareKey,
    TaskInstance,
    IterationTaskKey,
    LoopParameters,
    decode_event,
)

__all__ = [
    # Enums
    "TaskInstanceStatus",
    "StepOperator",
    "LoopMode",
    "EventKind",
    # Models
    "DagDefinition",
    "Step",
    "Branch",
    "DagInstance",
    "ShareData",
    "ShareKey",
    "TaskInstance",
    "IterationTaskKey",
    "LoopParameters",
    "decode_event",
]
