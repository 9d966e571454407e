# ============================================================================
# TASK INSTANCE MODEL
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Core model - Runtime unit of work
# PURPOSE: Track one occurrence of a step within a DAG run
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: TaskInstance, TaskMetadata, PreCheck
# DEPENDENCIES: pydantic
# ============================================================================
"""
Task Instance Model

Key concept:
- DagDefinition.Step = TEMPLATE (what to do)
- TaskInstance = INSTANCE (runtime state for one DAG run)

Identity is twofold:
- id: store-assigned, opaque, unique across runs
- task_id: semantic id used for dependency linking; unique within a run
"""

import uuid
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional
from pydantic import BaseModel, Field, computed_field

from core.contracts import PreCheckAction, TaskInstanceStatus
from core.models.dag import Step


def _new_id() -> str:
    return uuid.uuid4().hex


class TaskMetadata(BaseModel):
    """Execution metadata merged from trace events."""
    duration: Optional[int] = Field(default=None, description="Milliseconds")
    attempts: Optional[int] = Field(default=None, ge=0)
    max_retry: Optional[int] = Field(default=None, ge=0)


class PreCheck(BaseModel):
    """A condition group evaluated before a task runs."""
    conditions: List[Dict[str, Any]] = Field(default_factory=list)
    act: PreCheckAction = PreCheckAction.SKIP


class TaskInstance(BaseModel):
    """
    Runtime state of a task within a DAG run.

    Maps to: flowcore.task_instances table
    Unique: (dag_ins_id, task_id)
    """

    __sql_table__: ClassVar[str] = "task_instances"

    id: str = Field(default_factory=_new_id, max_length=64)
    task_id: str = Field(..., max_length=512)
    dag_ins_id: str = Field(..., max_length=64)

    action_name: str = Field(default="", max_length=128)
    name: str = Field(default="", max_length=256)
    status: TaskInstanceStatus = Field(default=TaskInstanceStatus.INIT)
    reason: Optional[Any] = None

    depend_on: List[str] = Field(default_factory=list)
    params: Dict[str, Any] = Field(default_factory=dict)
    results: Optional[Any] = None
    pre_checks: Dict[str, PreCheck] = Field(default_factory=dict)
    timeout_secs: int = Field(default=0, ge=0)

    # Loop-control tasks carry the loop body
    steps: List[Step] = Field(default_factory=list)

    metadata: Optional[TaskMetadata] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @computed_field
    @property
    def is_terminal(self) -> bool:
        """Check if task is in a terminal state."""
        return self.status.is_terminal()

    def get_param(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)

    def set_param(self, key: str, value: Any) -> None:
        self.params[key] = value

    def mark(self, status: TaskInstanceStatus, reason: Any = None) -> None:
        """Set status and reason, bumping updated_at."""
        self.status = status
        self.reason = reason
        self.updated_at = datetime.utcnow()

    def merge_results(self, data: Any) -> None:
        """Merge a variable payload into results (dicts merge, anything else replaces)."""
        if isinstance(self.results, dict) and isinstance(data, dict):
            self.results = {**self.results, **data}
        else:
            self.results = data

    def merge_metadata(self, data: Dict[str, Any]) -> None:
        """Merge trace fields (duration/attempts/max_retry) into metadata."""
        current = self.metadata.model_dump() if self.metadata else {}
        for field_name in TaskMetadata.model_fields:
            if data.get(field_name) is not None:
                current[field_name] = data[field_name]
        self.metadata = TaskMetadata(**current)


__all__ = ["TaskInstance", "TaskMetadata", "PreCheck"]
