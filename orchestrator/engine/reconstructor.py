# ============================================================================
# EVENT RECONSTRUCTOR
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Engine - Event-sourced task state
# PURPOSE: Fold a run's event log into its ordered task instances
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: reconstruct
# ============================================================================
"""
Event Reconstructor

Folds the append-only event log of one run into one TaskInstance per
TaskID. Parallel tasks interleave their events arbitrarily, so:

- Output order is the order in which each task's FIRST status event
  appears in the stream, never timestamp order.
- Variable ("__<task_id>") and Trace events may come before the task's
  first status event. They land on a placeholder that the status event
  later completes.
- Placeholders that never receive a status event are kept (status
  init, after the confirmed tasks) only when the DAG definition knows
  the step; otherwise they are dropped with a warning.
- Malformed events are logged and skipped.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from core.models import (
    DagDefinition,
    DagInstance,
    IterationTaskKey,
    Step,
    TaskInstance,
    TaskStatusEvent,
    TraceEvent,
    VariableEvent,
    decode_event,
)

logger = logging.getLogger(__name__)


def _find_step(dag: Optional[DagDefinition], task_id: str) -> Optional[Step]:
    """Step behind a TaskID: direct step id, else the leaf or base of a loop key."""
    if dag is None:
        return None
    step = dag.find_step(task_id)
    if step is not None:
        return step
    key = IterationTaskKey.parse(task_id)
    if key is None:
        return None
    if key.leaf_step_id is not None:
        return dag.find_step(key.leaf_step_id)
    return dag.find_step(key.base_id)


class _Fold:
    """Mutable state of one reconstruction pass."""

    def __init__(self, dag_ins: DagInstance, dag: Optional[DagDefinition]):
        self.dag_ins = dag_ins
        self.dag = dag
        self.instances: Dict[str, TaskInstance] = {}
        self.order: List[str] = []
        self.confirmed = set()

    def instance(self, task_id: str) -> TaskInstance:
        """Existing instance for task_id, or a new placeholder."""
        task = self.instances.get(task_id)
        if task is None:
            step = _find_step(self.dag, task_id)
            task = TaskInstance(
                task_id=task_id,
                dag_ins_id=self.dag_ins.id,
                name=step.title if step else "",
                action_name=step.operator if step else "",
            )
            self.instances[task_id] = task
        return task

    def on_status(self, event: TaskStatusEvent) -> None:
        task = self.instance(event.task_id)
        task.status = event.status
        if event.operator:
            task.action_name = event.operator
        if event.task_id not in self.confirmed:
            self.confirmed.add(event.task_id)
            self.order.append(event.task_id)

    def on_variable(self, event: VariableEvent) -> None:
        owner = event.owner_task_id
        if owner is None:
            logger.debug(f"Skipping variable '{event.name}': not a task result")
            return
        self.instance(owner).merge_results(event.data)

    def on_trace(self, event: TraceEvent) -> None:
        owner = event.owner_task_id
        if owner is None:
            logger.warning(f"Skipping trace '{event.name}': no owning task")
            return
        self.instance(owner).merge_metadata(event.data)

    def result(self) -> List[TaskInstance]:
        tasks = [self.instances[task_id] for task_id in self.order]
        for task_id, task in self.instances.items():
            if task_id in self.confirmed:
                continue
            if _find_step(self.dag, task_id) is None:
                logger.warning(
                    f"Dropping task {task_id} from run {self.dag_ins.id}: "
                    f"no status event and no matching step"
                )
                continue
            tasks.append(task)
        return tasks


def reconstruct(
    events: Iterable[Any],
    dag_ins: DagInstance,
    dag: Optional[DagDefinition] = None,
) -> List[TaskInstance]:
    """
    Rebuild a run's task instances from its event log.

    Args:
        events: Raw event rows (dicts) or decoded events, in log order
        dag_ins: The run the events belong to
        dag: Definition used for step title/operator lookup

    Returns:
        One TaskInstance per TaskID, ordered by first status event
    """
    fold = _Fold(dag_ins, dag)

    for position, raw in enumerate(events):
        try:
            event = decode_event(raw)
        except ValidationError as e:
            logger.warning(
                f"Skipping malformed event #{position} in run {dag_ins.id}: "
                f"{e.error_count()} validation error(s)"
            )
            continue
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping unreadable event #{position} in run {dag_ins.id}: {e}")
            continue

        try:
            if isinstance(event, TaskStatusEvent):
                fold.on_status(event)
            elif isinstance(event, VariableEvent):
                fold.on_variable(event)
            else:
                fold.on_trace(event)
        except ValidationError as e:
            logger.warning(
                f"Skipping event #{position} in run {dag_ins.id}: payload rejected "
                f"with {e.error_count()} validation error(s)"
            )

    tasks = fold.result()
    logger.debug(f"Reconstructed {len(tasks)} tasks for run {dag_ins.id}")
    return tasks


__all__ = ["reconstruct"]
