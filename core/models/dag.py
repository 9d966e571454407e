# ============================================================================
# DAG DEFINITION MODEL
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Core model - Static DAG definition
# PURPOSE: Steps, branches and the DAG they form (loaded from YAML)
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: DagDefinition, Step, Branch
# DEPENDENCIES: pydantic
# ============================================================================
"""
DAG Definition Models

A DagDefinition is the template a DagInstance runs.
Steps are recursive:
- PARALLEL steps hold branches that run side by side
- BRANCH steps hold branches guarded by conditions
- LOOP steps hold a body (steps) expanded once per iteration
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from core.contracts import StepOperator


class Branch(BaseModel):
    """One branch of a parallel or conditional step."""
    id: str = Field(default="", max_length=64)
    # Each entry is a condition group; a group is a list of condition dicts
    conditions: List[List[Dict[str, Any]]] = Field(default_factory=list)
    steps: List["Step"] = Field(default_factory=list)


class Step(BaseModel):
    """
    A node in the static DAG definition.

    This is the TEMPLATE. TaskInstance (in task.py) is the runtime
    occurrence of a step.
    """
    id: str = Field(..., max_length=64)
    title: str = Field(default="", max_length=256)
    operator: str = Field(..., max_length=128)
    parameters: Dict[str, Any] = Field(default_factory=dict)

    # For PARALLEL / BRANCH steps
    branches: List[Branch] = Field(default_factory=list)

    # For LOOP steps - the body expanded on every iteration
    steps: List["Step"] = Field(default_factory=list)

    @property
    def is_parallel(self) -> bool:
        return self.operator == StepOperator.PARALLEL

    @property
    def is_branch(self) -> bool:
        return self.operator == StepOperator.BRANCH

    @property
    def is_loop(self) -> bool:
        return self.operator == StepOperator.LOOP


Branch.model_rebuild()
Step.model_rebuild()


class DagDefinition(BaseModel):
    """
    Complete DAG definition.

    Immutable once loaded - changes require a new version.
    """
    id: str = Field(..., max_length=64)
    name: str = Field(default="", max_length=128)
    version: int = Field(default=1, ge=1)
    description: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)

    def iter_steps(self):
        """Yield every step, depth first, including nested branch and loop bodies."""
        stack = list(reversed(self.steps))
        while stack:
            step = stack.pop()
            yield step
            nested: List[Step] = list(step.steps)
            for branch in step.branches:
                nested.extend(branch.steps)
            stack.extend(reversed(nested))

    def find_step(self, step_id: str) -> Optional[Step]:
        """Find a step by id anywhere in the definition."""
        for step in self.iter_steps():
            if step.id == step_id:
                return step
        return None

    def validate_structure(self) -> List[str]:
        """
        Validate DAG structure.

        Returns list of validation errors (empty if valid).
        """
        errors = []

        seen = set()
        for step in self.iter_steps():
            if step.id in seen:
                errors.append(f"Duplicate step id '{step.id}'")
            seen.add(step.id)

            if (step.is_parallel or step.is_branch) and not step.branches:
                errors.append(f"Step '{step.id}' ({step.operator}) must have branches")

            if step.is_loop and not step.steps:
                errors.append(f"LOOP step '{step.id}' must have body steps")

        return errors


__all__ = ["DagDefinition", "Step", "Branch"]
