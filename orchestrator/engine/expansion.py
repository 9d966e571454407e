# ============================================================================
# LOOP BODY EXPANSION
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Engine - Recursive step expansion for loop iterations
# PURPOSE: Turn a loop body into one iteration's TaskInstances
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: StepScope, ExpansionContext, ExpansionResult, expand_steps,
#          get_last_task_ids
# ============================================================================
"""
Loop Body Expansion

Expands the body steps of a loop for one iteration. Everything here is
a pure function of its inputs: no store access, no shared output list.

Per step kind:
    ordinary   one task; terminal ids = [its TaskID]
    parallel   no task of its own; every branch is expanded from the
               incoming ids; terminal ids = union of branch terminals
    branch     one control task carrying pre-checks for its branches;
               branches start from the control task; terminal ids =
               union of branch terminals

An empty branch passes its incoming ids through unchanged, so an empty
conditional branch falls back to the branch control task's id.

get_last_task_ids() answers "what does the next step depend on" with
the same id formula as expand_steps(). Both must stay in lockstep; the
tests check that every id it returns was created by expansion.
"""

import copy
from dataclasses import dataclass, field
from typing import AbstractSet, Dict, Iterable, List, Optional, Sequence

from core.config import TimeoutDefaults, get_defaults
from core.models import IterationTaskKey, PreCheck, Step, TaskInstance


# ============================================================================
# SCOPES & RESULTS
# ============================================================================

@dataclass(frozen=True)
class StepScope:
    """
    Where a list of steps sits inside an iteration.

    Top-level body steps have no parent key; steps inside branch
    `branch_index` of a parallel/branch step hang under that step's key.
    """
    base_id: str
    iteration: int
    parent: Optional[IterationTaskKey] = None
    branch_index: int = 0

    def key_for(self, step: Step) -> IterationTaskKey:
        if self.parent is None:
            return IterationTaskKey(self.base_id, self.iteration, step.id)
        return self.parent.child(self.branch_index, step.id)

    def branch(self, parent_key: IterationTaskKey, branch_index: int) -> "StepScope":
        return StepScope(self.base_id, self.iteration, parent_key, branch_index)


@dataclass
class ExpansionContext:
    """Inputs shared by one expansion pass."""
    dag_ins_id: str
    existing_task_ids: AbstractSet[str] = frozenset()
    timeouts: Optional[TimeoutDefaults] = None

    def timeout_for(self, operator: str) -> int:
        timeouts = self.timeouts or get_defaults().timeouts
        return timeouts.get_timeout(operator)


@dataclass
class ExpansionResult:
    """Tasks created by an expansion plus the ids the next step chains to."""
    tasks: List[TaskInstance] = field(default_factory=list)
    terminal_ids: List[str] = field(default_factory=list)


def _unique(ids: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for task_id in ids:
        if task_id not in seen:
            seen.add(task_id)
            result.append(task_id)
    return result


def branch_pre_checks(branch_task_id: str, branch_index: int, conditions) -> Dict[str, PreCheck]:
    """Pre-checks for one branch, keyed "<branch task>_<branch>_<group>"."""
    return {
        f"{branch_task_id}_{branch_index}_{group_index}": PreCheck(conditions=list(group))
        for group_index, group in enumerate(conditions)
    }


# ============================================================================
# EXPANSION
# ============================================================================

def _new_task(
    step: Step,
    task_id: str,
    depend_on: List[str],
    ctx: ExpansionContext,
    pre_checks: Optional[Dict[str, PreCheck]],
) -> TaskInstance:
    return TaskInstance(
        task_id=task_id,
        dag_ins_id=ctx.dag_ins_id,
        action_name=step.operator,
        name=step.title or step.id,
        depend_on=list(depend_on),
        params=copy.deepcopy(step.parameters),
        pre_checks=dict(pre_checks or {}),
        timeout_secs=ctx.timeout_for(step.operator),
        steps=[s.model_copy(deep=True) for s in step.steps],
    )


def expand_step(
    step: Step,
    scope: StepScope,
    incoming: Sequence[str],
    ctx: ExpansionContext,
    pre_checks: Optional[Dict[str, PreCheck]] = None,
) -> ExpansionResult:
    """Expand a single step whose predecessors are `incoming`."""
    key = scope.key_for(step)
    task_id = key.encode()
    result = ExpansionResult()

    if step.is_parallel:
        terminals: List[str] = []
        for index, branch in enumerate(step.branches):
            # Parallel nodes have no task; branch heads inherit the guard
            sub = expand_steps(branch.steps, scope.branch(key, index), incoming, ctx, pre_checks)
            result.tasks.extend(sub.tasks)
            terminals.extend(sub.terminal_ids)
        result.terminal_ids = _unique(terminals) if step.branches else list(incoming)
        return result

    if task_id not in ctx.existing_task_ids:
        result.tasks.append(_new_task(step, task_id, list(incoming), ctx, pre_checks))

    if not step.is_branch:
        result.terminal_ids = [task_id]
        return result

    terminals = []
    for index, branch in enumerate(step.branches):
        guards = branch_pre_checks(task_id, index, branch.conditions)
        sub = expand_steps(branch.steps, scope.branch(key, index), [task_id], ctx, guards)
        result.tasks.extend(sub.tasks)
        terminals.extend(sub.terminal_ids)
    result.terminal_ids = _unique(terminals) if step.branches else [task_id]
    return result


def expand_steps(
    steps: Sequence[Step],
    scope: StepScope,
    incoming: Sequence[str],
    ctx: ExpansionContext,
    pre_checks: Optional[Dict[str, PreCheck]] = None,
) -> ExpansionResult:
    """
    Expand an ordered list of steps.

    Each step depends on the terminal ids of the step before it; the
    first depends on `incoming`. Steps whose TaskID is already in
    ctx.existing_task_ids are not recreated but still chain.

    Args:
        steps: Steps in execution order
        scope: Location of the list inside the iteration
        incoming: TaskIDs the first step depends on
        ctx: Run id, existing TaskIDs, timeouts
        pre_checks: Guards attached to tasks created directly for these steps

    Returns:
        ExpansionResult with created tasks and terminal ids
    """
    result = ExpansionResult(terminal_ids=list(incoming))
    for step in steps:
        sub = expand_step(step, scope, result.terminal_ids, ctx, pre_checks)
        result.tasks.extend(sub.tasks)
        result.terminal_ids = sub.terminal_ids
    result.terminal_ids = _unique(result.terminal_ids)
    return result


# ============================================================================
# TERMINAL IDS
# ============================================================================

def get_last_task_ids(
    steps: Sequence[Step],
    scope: StepScope,
    incoming: Sequence[str],
) -> List[str]:
    """
    TaskIDs a step placed after `steps` must depend on.

    Mirrors expand_steps(): empty lists pass `incoming` through, a
    trailing parallel/branch step yields the union of its branches'
    terminals, anything else yields its own TaskID.
    """
    if not steps:
        return _unique(incoming)

    last = steps[-1]
    key = scope.key_for(last)

    if last.is_parallel:
        entry = get_last_task_ids(steps[:-1], scope, incoming)
        if not last.branches:
            return entry
        terminals: List[str] = []
        for index, branch in enumerate(last.branches):
            terminals.extend(get_last_task_ids(branch.steps, scope.branch(key, index), entry))
        return _unique(terminals)

    if last.is_branch and last.branches:
        branch_task_id = key.encode()
        terminals = []
        for index, branch in enumerate(last.branches):
            terminals.extend(
                get_last_task_ids(branch.steps, scope.branch(key, index), [branch_task_id])
            )
        return _unique(terminals)

    return [key.encode()]


__all__ = [
    "StepScope",
    "ExpansionContext",
    "ExpansionResult",
    "expand_step",
    "expand_steps",
    "branch_pre_checks",
    "get_last_task_ids",
]
