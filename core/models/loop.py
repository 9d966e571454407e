# ============================================================================
# LOOP PARAMETERS MODEL
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Core model - Loop-control view model
# PURPOSE: Typed view of a loop-control task's parameters
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: LoopParameters, LoopOutput
# DEPENDENCIES: pydantic
# ============================================================================
"""
Loop Parameters

Transient view over the params of a loop-control TaskInstance.
Built fresh for every handler invocation; the params dict on the
task remains the persisted source.
"""

from typing import Any, List, Optional
from pydantic import BaseModel, Field, field_validator

from core.contracts import LoopMode
from core.models.dag import Step
from core.models.task import TaskInstance


class LoopOutput(BaseModel):
    """One aggregated loop output: key -> template evaluated per iteration."""
    key: str = Field(..., min_length=1)
    value: str = Field(default="", description="Template, e.g. '{{ __1001_i0_s2.result }}'")


class LoopParameters(BaseModel):
    """Parameters of one loop-control task."""
    mode: LoopMode = LoopMode.LIMIT
    limit: int = 0
    array: Optional[List[Any]] = None
    outputs: List[LoopOutput] = Field(default_factory=list)
    current_iteration: int = Field(default=0, ge=0)
    last_iteration_task_id: str = ""

    # Store id of the loop-control task being handled
    loop_control_id: str = ""
    # TaskID of the logical loop (the original, first control task)
    loop_task_id: str = ""

    steps: List[Step] = Field(default_factory=list)

    @field_validator("mode", mode="before")
    @classmethod
    def default_mode(cls, v):
        """Empty mode means limit."""
        if v in (None, ""):
            return LoopMode.LIMIT
        return v

    @field_validator("limit", "current_iteration", mode="before")
    @classmethod
    def none_as_zero(cls, v):
        return 0 if v is None else v

    @field_validator("last_iteration_task_id", "loop_control_id", "loop_task_id", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return "" if v is None else v

    @property
    def effective_limit(self) -> int:
        """Iteration count: array length in array mode, limit otherwise."""
        if self.mode == LoopMode.ARRAY:
            return len(self.array or [])
        return self.limit

    def value_at(self, iteration: int) -> Any:
        """Array element bound to an iteration (array mode only)."""
        if self.mode != LoopMode.ARRAY or not self.array:
            return None
        if 0 <= iteration < len(self.array):
            return self.array[iteration]
        return None

    @classmethod
    def from_task(cls, task: TaskInstance) -> "LoopParameters":
        """Build from a loop-control task's params and body steps."""
        known = {name: task.params[name] for name in cls.model_fields if name in task.params}
        known.pop("steps", None)
        params = cls(**known)
        params.steps = list(task.steps)
        return params


__all__ = ["LoopParameters", "LoopOutput"]
