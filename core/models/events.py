# ============================================================================
# DAG INSTANCE EVENT MODEL
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Core model - Append-only execution event log
# PURPOSE: Typed events decoded once at the log boundary
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: TaskStatusEvent, VariableEvent, TraceEvent, DagInstanceEvent, decode_event
# DEPENDENCIES: pydantic
# ============================================================================
"""
DAG Instance Event Model

The event log holds three kinds of records:
- TaskStatus: a task moved to a new status
- Variable:   a named value write; "__<task_id>" carries a task's results
- Trace:      execution metadata (attempts, duration, retry budget)

Raw rows look like:
    {type, task_id, operator, status, name, data, timestamp}

decode_event() turns one raw row into a typed event. Both the wire
type names ("TaskStatus", "Variable", "Trace") and the lower-case
forms are accepted.
"""

import json
from typing import Annotated, Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter, field_validator

from core.contracts import EventKind, TaskInstanceStatus

# Synthetic variable-name convention for task results
TASK_VARIABLE_PREFIX = "__"
TRACE_SUFFIX = "_trace"

_WIRE_TYPES = {
    "TaskStatus": EventKind.TASK_STATUS.value,
    "Variable": EventKind.VARIABLE.value,
    "Trace": EventKind.TRACE.value,
}


class _EventBase(BaseModel):
    timestamp: int = Field(default=0, description="Microseconds since epoch")


class _PayloadEvent(_EventBase):
    name: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def decode_json_payload(cls, v):
        """Accept a JSON-encoded object as payload."""
        if v is None:
            return {}
        if isinstance(v, (str, bytes)):
            return json.loads(v)
        return v


class TaskStatusEvent(_EventBase):
    """A task changed status."""
    type: Literal["task_status"] = EventKind.TASK_STATUS.value
    task_id: str = Field(..., min_length=1)
    operator: Optional[str] = None
    status: TaskInstanceStatus


class VariableEvent(_PayloadEvent):
    """A named value write. name "__<task_id>" attaches data to that task's results."""
    type: Literal["variable"] = EventKind.VARIABLE.value

    @property
    def owner_task_id(self) -> Optional[str]:
        """TaskID encoded in the variable name, if it follows the convention."""
        if not self.name.startswith(TASK_VARIABLE_PREFIX):
            return None
        owner = self.name[len(TASK_VARIABLE_PREFIX):]
        return owner or None


class TraceEvent(_PayloadEvent):
    """Execution metadata for a task."""
    type: Literal["trace"] = EventKind.TRACE.value
    task_id: Optional[str] = None

    @property
    def owner_task_id(self) -> Optional[str]:
        if self.task_id:
            return self.task_id
        name = self.name
        if name.startswith(TASK_VARIABLE_PREFIX) and name.endswith(TRACE_SUFFIX):
            owner = name[len(TASK_VARIABLE_PREFIX):-len(TRACE_SUFFIX)]
            return owner or None
        return None


DagInstanceEvent = Annotated[
    Union[TaskStatusEvent, VariableEvent, TraceEvent],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter = TypeAdapter(DagInstanceEvent)


def decode_event(raw: Union[Dict[str, Any], BaseModel]) -> DagInstanceEvent:
    """
    Decode one raw event row.

    Raises:
        pydantic.ValidationError: unknown type, missing fields, bad payload
    """
    if isinstance(raw, (TaskStatusEvent, VariableEvent, TraceEvent)):
        return raw

    data = dict(raw)
    event_type = data.get("type")
    if isinstance(event_type, str):
        data["type"] = _WIRE_TYPES.get(event_type, event_type)

    # Rows carry every column; drop the ones a kind does not use
    if data.get("type") == EventKind.VARIABLE.value:
        data.pop("task_id", None)
    if data.get("type") != EventKind.TASK_STATUS.value:
        data.pop("status", None)
        data.pop("operator", None)
    else:
        data.pop("name", None)
        data.pop("data", None)
    if data.get("timestamp") is None:
        data.pop("timestamp", None)

    return _event_adapter.validate_python(data)


__all__ = [
    "TaskStatusEvent",
    "VariableEvent",
    "TraceEvent",
    "DagInstanceEvent",
    "decode_event",
    "TASK_VARIABLE_PREFIX",
]
