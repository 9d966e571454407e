# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All models for the loop orchestration core.
"""

from core.models.dag import DagDefinition, Step, Branch
from core.models.dag_instance import DagInstance, ShareData, ShareKey
from core.models.task import TaskInstance, TaskMetadata, PreCheck
from core.models.task_key import IterationTaskKey, iteration_prefix, base_of
from core.models.events import (
    TaskStatusEvent,
    VariableEvent,
    TraceEvent,
    DagInstanceEvent,
    decode_event,
)
from core.models.loop import LoopParameters, LoopOutput

__all__ = [
    # Definition
    "DagDefinition",
    "Step",
    "Branch",
    # Run
    "DagInstance",
    "ShareData",
    "ShareKey",
    # Task
    "TaskInstance",
    "TaskMetadata",
    "PreCheck",
    "IterationTaskKey",
    "iteration_prefix",
    "base_of",
    # Events
    "TaskStatusEvent",
    "VariableEvent",
    "TraceEvent",
    "DagInstanceEvent",
    "decode_event",
    # Loop
    "LoopParameters",
    "LoopOutput",
]
