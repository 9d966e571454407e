# ============================================================================
# LOOP EXECUTOR
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Orchestrator - Per-iteration task materialization
# PURPOSE: Create an iteration's tasks, refresh the tree, push the frontier
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: LoopExecutor
# ============================================================================
"""
Loop Executor

Works on behalf of one loop-control task:

1. generate_iteration_tasks()  expand the body for iteration N, add the
                               control copy for N+1, batch-create both
2. update_task_tree()          dedupe the run's tasks, rebuild the tree
3. push_executable_tasks()     hand the frontier to the scheduler, or
                               re-push only the control task when the
                               iteration has failed tasks
4. collect_outputs()           aggregate recorded loop outputs at the end

Creation is serialized by an asyncio.Lock per executor. Executors in
other processes are kept apart by the existence checks against the
store and by the store rejecting duplicate TaskIDs.
"""

import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional

from core.config import TimeoutDefaults
from core.contracts import TaskInstanceStatus
from core.models import (
    DagInstance,
    IterationTaskKey,
    LoopParameters,
    ShareKey,
    TaskInstance,
    iteration_prefix,
)
from orchestrator.engine.expansion import (
    ExpansionContext,
    StepScope,
    expand_steps,
    get_last_task_ids,
)
from orchestrator.engine.task_tree import TaskTree, dedupe_task_instances, update_node_status
from orchestrator.errors import IterationGenerationError
from repositories.base import RepositoryError, TaskInstanceStore
from services.scheduler import TaskScheduler
from services.tree_cache import TaskTreeCache

logger = logging.getLogger(__name__)

# Params that describe one control task and are not copied to the next
_NOT_CARRIED = ("output_values", "loop_control_id")


class LoopExecutor:
    """Materializes loop iterations for one loop-control task."""

    def __init__(
        self,
        store: TaskInstanceStore,
        scheduler: TaskScheduler,
        tree_cache: TaskTreeCache,
        timeouts: Optional[TimeoutDefaults] = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.tree_cache = tree_cache
        self.timeouts = timeouts
        self._lock = asyncio.Lock()

    @staticmethod
    def loop_base(control: TaskInstance, params: LoopParameters) -> str:
        """TaskID of the logical loop; namespace root of every generated id."""
        return params.loop_task_id or control.task_id

    def terminal_task_ids(self, control: TaskInstance, params: LoopParameters) -> List[str]:
        """TaskIDs that close the current iteration's body."""
        scope = StepScope(self.loop_base(control, params), params.current_iteration)
        return get_last_task_ids(params.steps, scope, [control.task_id])

    # ========================================================================
    # GENERATION
    # ========================================================================

    async def generate_iteration_tasks(
        self,
        dag_ins: DagInstance,
        control: TaskInstance,
        params: LoopParameters,
    ) -> Optional[List[TaskInstance]]:
        """
        Create the tasks of iteration params.current_iteration.

        Returns:
            Created tasks; [] if the iteration already exists;
            None if the previous iteration has not finished

        Raises:
            IterationGenerationError: store failure while creating
        """
        async with self._lock:
            base = self.loop_base(control, params)
            iteration = params.current_iteration
            tasks = await self.store.list_task_instances(dag_ins.id)

            prefix = iteration_prefix(base, iteration)
            if any(t.task_id.startswith(prefix) for t in tasks):
                logger.info(f"Iteration {iteration} of loop {base} already materialized")
                return []

            if iteration > 0:
                previous = iteration_prefix(base, iteration - 1)
                pending = [
                    t.task_id for t in tasks
                    if t.task_id.startswith(previous) and not t.status.is_satisfied()
                ]
                if pending:
                    logger.info(
                        f"Loop {base} iteration {iteration} waits on "
                        f"{len(pending)} unfinished tasks of iteration {iteration - 1}"
                    )
                    return None

            existing_ids = {t.task_id for t in tasks}
            scope = StepScope(base, iteration)
            ctx = ExpansionContext(dag_ins.id, existing_ids, self.timeouts)
            expansion = expand_steps(params.steps, scope, [control.task_id], ctx)

            terminal_ids = get_last_task_ids(params.steps, scope, [control.task_id])
            if terminal_ids != expansion.terminal_ids:
                logger.warning(
                    f"Loop {base} terminal ids diverge: "
                    f"{terminal_ids} vs expanded {expansion.terminal_ids}"
                )

            new_tasks = list(expansion.tasks)
            next_control = None
            if iteration + 1 <= params.limit:
                next_id = IterationTaskKey.control(base, iteration + 1).encode()
                if next_id not in existing_ids:
                    next_control = self._next_control_task(control, params, next_id, terminal_ids)
                    new_tasks.append(next_control)

            if iteration == 0:
                self._record_dependents(dag_ins, control, base, tasks)

            if not new_tasks:
                return []

            try:
                created = await self.store.batch_create(new_tasks)
            except RepositoryError as e:
                logger.error(f"Creating iteration {iteration} of loop {base} failed: {e}")
                raise IterationGenerationError(
                    f"Failed to create tasks for iteration {iteration} of loop {base}: {e}",
                    task_id=control.task_id,
                    iteration=iteration,
                ) from e

            logger.info(
                f"Created {len(created)} tasks for iteration {iteration} of loop {base}"
            )

            if next_control is not None:
                await self._wire_dependents(dag_ins, base, next_control.task_id)

            return created

    def _next_control_task(
        self,
        control: TaskInstance,
        params: LoopParameters,
        task_id: str,
        depend_on: List[str],
    ) -> TaskInstance:
        carried = {
            k: copy.deepcopy(v) for k, v in control.params.items() if k not in _NOT_CARRIED
        }
        carried["current_iteration"] = params.current_iteration + 1
        carried["loop_task_id"] = self.loop_base(control, params)
        carried["last_iteration_task_id"] = depend_on[-1] if depend_on else control.task_id
        return TaskInstance(
            task_id=task_id,
            dag_ins_id=control.dag_ins_id,
            action_name=control.action_name,
            name=control.name,
            depend_on=list(depend_on) or [control.task_id],
            params=carried,
            timeout_secs=control.timeout_secs,
            steps=[s.model_copy(deep=True) for s in params.steps],
        )

    def _record_dependents(
        self,
        dag_ins: DagInstance,
        control: TaskInstance,
        base: str,
        tasks: List[TaskInstance],
    ) -> None:
        """Remember tasks outside the loop that wait on the loop task."""
        key = ShareKey.loop_field(base, "dependent_tasks")
        if dag_ins.share_data.contains(key):
            return

        dependents = []
        for task in tasks:
            if task.id == control.id or base not in task.depend_on:
                continue
            parsed = IterationTaskKey.parse(task.task_id)
            if parsed is not None and parsed.base_id == base:
                continue
            dependents.append(task.id)

        dag_ins.share_data.set(key, dependents)
        if dependents:
            logger.info(f"Loop {base} has {len(dependents)} downstream dependents")

    async def _wire_dependents(self, dag_ins: DagInstance, base: str, control_task_id: str) -> None:
        """Make downstream dependents also wait on the newest control copy."""
        dependents = dag_ins.share_data.get(ShareKey.loop_field(base, "dependent_tasks")) or []
        for task_ins_id in dependents:
            task = await self.store.get_task_instance(task_ins_id)
            if task is None:
                logger.warning(f"Loop {base} dependent {task_ins_id} no longer exists")
                continue
            if control_task_id in task.depend_on:
                continue
            task.depend_on.append(control_task_id)
            await self.store.patch(task, ["depend_on"])
            logger.debug(f"Task {task.task_id} now also waits on {control_task_id}")

    # ========================================================================
    # TREE & PUSH
    # ========================================================================

    async def update_task_tree(self, dag_ins: DagInstance) -> TaskTree:
        """Rebuild and cache the run's tree, deleting duplicate TaskIDs first."""
        tasks = await self.store.list_task_instances(dag_ins.id)
        unique, duplicates = dedupe_task_instances(tasks)
        if duplicates:
            logger.warning(f"Deleting {len(duplicates)} duplicate tasks in run {dag_ins.id}")
            try:
                await self.store.batch_delete(duplicates)
            except RepositoryError as e:
                logger.error(f"Deleting duplicate tasks in run {dag_ins.id} failed: {e}")

        tree = TaskTree.build(dag_ins, unique)
        self.tree_cache.store(dag_ins.id, tree)
        return tree

    async def push_executable_tasks(
        self,
        dag_ins: DagInstance,
        control: TaskInstance,
        params: LoopParameters,
        tree: TaskTree,
    ) -> List[TaskInstance]:
        """
        Push newly executable tasks.

        When the current iteration has failed or canceled tasks, the
        control task is reset to init and is the only task pushed.

        Returns:
            Tasks handed to the scheduler
        """
        base = self.loop_base(control, params)
        prefix = iteration_prefix(base, params.current_iteration)
        tasks = await self.store.list_task_instances(dag_ins.id)
        by_id: Dict[str, TaskInstance] = {t.id: t for t in tasks}

        stored_control = by_id.get(control.id, control)
        broken = [t.task_id for t in tasks if t.task_id.startswith(prefix) and t.status.is_broken()]
        if broken and stored_control.status != TaskInstanceStatus.CANCELED:
            control.mark(
                TaskInstanceStatus.INIT,
                reason=f"iteration {params.current_iteration} has failed tasks: {', '.join(broken)}",
            )
            await self.store.patch(control, ["status", "reason"])
            update_node_status(tree, control.id, control.status)
            await self.scheduler.push(dag_ins, control)
            logger.warning(f"Loop {base} re-entered after failed tasks {broken}")
            return [control]

        pushed = []
        for task_ins_id in tree.executable_task_ids():
            task = by_id.get(task_ins_id)
            if task is None:
                continue
            if self.scheduler.is_cancel_pending(task_ins_id):
                logger.debug(f"Not pushing {task.task_id}: cancellation pending")
                continue
            await self.scheduler.push(dag_ins, task)
            pushed.append(task)

        logger.debug(f"Pushed {len(pushed)} executable tasks for run {dag_ins.id}")
        return pushed

    # ========================================================================
    # OUTPUTS
    # ========================================================================

    async def collect_outputs(
        self,
        dag_ins: DagInstance,
        control: TaskInstance,
        params: LoopParameters,
    ) -> Optional[Dict[str, List[Any]]]:
        """
        Aggregate each iteration's recorded outputs into ShareData.

        Iteration N's values are recorded on control copy N+1 under
        params["output_values"]; missing values become None.
        """
        if not params.outputs:
            return None

        base = self.loop_base(control, params)
        tasks = await self.store.list_task_instances(dag_ins.id)

        by_iteration: Dict[int, List[TaskInstance]] = {}
        for task in tasks:
            key = IterationTaskKey.parse(task.task_id)
            if key is None or not key.is_control or key.base_id != base:
                continue
            by_iteration.setdefault(key.iteration, []).append(task)

        loop_key = ShareKey.loop_values(base)
        existing = dag_ins.share_data.get(loop_key)
        outputs: Dict[str, List[Any]] = {}
        if isinstance(existing, dict) and isinstance(existing.get("outputs"), dict):
            outputs = copy.deepcopy(existing["outputs"])

        for iteration in range(1, params.current_iteration + 1):
            for output in params.outputs:
                value = None
                for task in by_iteration.get(iteration, []):
                    recorded = {
                        entry.get("key"): entry.get("value")
                        for entry in task.get_param("output_values") or []
                        if isinstance(entry, dict)
                    }
                    if recorded.get(output.key) is not None:
                        value = recorded[output.key]
                        break

                values = outputs.setdefault(output.key, [])
                while len(values) < iteration - 1:
                    values.append(None)
                if len(values) < iteration:
                    values.append(value)

        dag_ins.share_data.set(loop_key, {"outputs": outputs})
        logger.info(f"Collected outputs {sorted(outputs)} for loop {base}")
        return outputs


__all__ = ["LoopExecutor"]
