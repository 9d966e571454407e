# ============================================================================
# LOOP HANDLER
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Orchestrator - Loop-control task state machine
# PURPOSE: Decide whether a loop is done, waiting, or advances an iteration
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: LoopHandler, LoopOutcome
# ============================================================================
"""
Loop Handler

Invoked by the scheduler every time a loop-control task is picked up.
Each invocation ends in one of three outcomes:

    COMPLETED   the loop finished (zero iterations, or ceiling reached)
    WAITING     dependencies or the previous iteration are not done yet;
                nothing changed, the next trigger tries again
    ADVANCED    the current iteration's tasks exist and were pushed

A loop runs as a chain of control tasks: the original task (the logical
loop, iteration 0) then one copy per iteration ("<loop>_i1", "<loop>_i2",
...). Copy N+1 is created together with iteration N's body and depends
on the body's terminal tasks.

Redelivery is harmless: ShareData publishing is skipped when the
iteration key already exists and generation is a no-op for an
iteration that is already in the store.
"""

import logging
from enum import Enum
from typing import Optional

from core.config import LoopDefaults, get_defaults
from core.contracts import LoopMode, TaskInstanceStatus
from core.logging import log_context
from core.models import DagInstance, LoopParameters, ShareKey, TaskInstance
from orchestrator.engine.task_tree import TaskTree, update_node_status
from orchestrator.engine.templates import render_loop_outputs
from orchestrator.errors import DependencyFailedError
from orchestrator.loop_executor import LoopExecutor
from repositories.base import RepositoryError, TaskInstanceStore
from services.scheduler import TaskScheduler
from services.tree_cache import TaskTreeCache

logger = logging.getLogger(__name__)


class LoopOutcome(str, Enum):
    """Result of one handler invocation."""
    COMPLETED = "completed"
    WAITING = "waiting"
    ADVANCED = "advanced"


class LoopHandler:
    """Advances loop-control tasks."""

    def __init__(
        self,
        store: TaskInstanceStore,
        scheduler: TaskScheduler,
        tree_cache: TaskTreeCache,
        executor: Optional[LoopExecutor] = None,
        defaults: Optional[LoopDefaults] = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.tree_cache = tree_cache
        self.executor = executor or LoopExecutor(store, scheduler, tree_cache)
        self.defaults = defaults or get_defaults().loop

    async def handle(self, dag_ins: DagInstance, task: TaskInstance) -> LoopOutcome:
        """
        Run one step of the loop state machine for a control task.

        Raises:
            DependencyFailedError: a dependency of the control task failed
            IterationGenerationError: the store failed creating tasks
            RepositoryError: any other store failure
        """
        params = self._load_params(task)
        base = params.loop_task_id or task.task_id

        with log_context(run_id=dag_ins.id, task_id=task.task_id, loop_id=base):
            return await self._handle(dag_ins, task, params)

    # ========================================================================
    # STATE MACHINE
    # ========================================================================

    async def _handle(
        self,
        dag_ins: DagInstance,
        task: TaskInstance,
        params: LoopParameters,
    ) -> LoopOutcome:
        tree = await self._ensure_tree(dag_ins)
        update_node_status(tree, task.id, task.status)

        limit = params.limit
        if limit <= 0:
            task.mark(TaskInstanceStatus.SUCCESS, reason="no iterations")
            await self.store.update(task)
            update_node_status(tree, task.id, task.status)
            await self.scheduler.entry_task_ins(task)
            logger.info(f"Loop {task.task_id} has no iterations")
            return LoopOutcome.COMPLETED

        if params.current_iteration > 0 and not await self._dependencies_done(task):
            return LoopOutcome.WAITING

        params.loop_control_id = task.id
        params.loop_task_id = params.loop_task_id or task.task_id
        task.set_param("loop_control_id", params.loop_control_id)
        task.set_param("loop_task_id", params.loop_task_id)
        task.set_param("limit", limit)

        if task.status.is_broken():
            logger.info(f"Resetting loop task {task.task_id} from {task.status.value} to init")
            task.mark(TaskInstanceStatus.INIT, reason=f"resumed after {task.status.value}")
            await self.store.update(task)
            update_node_status(tree, task.id, task.status)

        if params.current_iteration > 0 and params.outputs:
            task.set_param("output_values", render_loop_outputs(params, dag_ins))

        if params.current_iteration >= limit:
            return await self._complete(dag_ins, task, params, tree)

        self._publish_iteration(dag_ins, task, params)

        created = await self.executor.generate_iteration_tasks(dag_ins, task, params)
        if created is None:
            return LoopOutcome.WAITING

        terminal_ids = self.executor.terminal_task_ids(task, params)
        last_id = terminal_ids[-1] if terminal_ids else task.task_id
        params.last_iteration_task_id = last_id
        task.set_param("current_iteration", params.current_iteration)
        task.set_param("last_iteration_task_id", last_id)
        dag_ins.share_data.set(
            ShareKey.loop_field(params.loop_task_id, "last_iteration_task_id"), last_id
        )

        task.mark(TaskInstanceStatus.SUCCESS, reason=f"loop iteration {params.current_iteration} done")
        task.results = self._iteration_values(params)
        await self.store.update(task)

        tree = await self.executor.update_task_tree(dag_ins)
        pushed = await self.executor.push_executable_tasks(dag_ins, task, params, tree)
        logger.info(
            f"Loop {params.loop_task_id} iteration {params.current_iteration}: "
            f"{len(created)} tasks created, {len(pushed)} pushed"
        )
        return LoopOutcome.ADVANCED

    async def _complete(
        self,
        dag_ins: DagInstance,
        task: TaskInstance,
        params: LoopParameters,
        tree: TaskTree,
    ) -> LoopOutcome:
        task.mark(
            TaskInstanceStatus.SUCCESS,
            reason=f"loop completed after {params.current_iteration} iterations",
        )
        await self.store.update(task)
        update_node_status(tree, task.id, task.status)

        try:
            await self.executor.collect_outputs(dag_ins, task, params)
        except RepositoryError as e:
            logger.warning(f"Collecting outputs of loop {params.loop_task_id} failed: {e}")

        await self.scheduler.entry_task_ins(task)
        logger.info(f"Loop {params.loop_task_id} completed")
        return LoopOutcome.COMPLETED

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _load_params(self, task: TaskInstance) -> LoopParameters:
        """Parameters with the mode normalized and the limit made effective."""
        if not task.get_param("mode"):
            task.set_param("mode", self.defaults.default_mode)
        params = LoopParameters.from_task(task)

        limit = params.effective_limit
        if limit > self.defaults.max_iterations:
            logger.warning(
                f"Loop {task.task_id} limit {limit} exceeds ceiling "
                f"{self.defaults.max_iterations}, clamping"
            )
            limit = self.defaults.clamp(limit)
        params.limit = limit
        return params

    async def _ensure_tree(self, dag_ins: DagInstance) -> TaskTree:
        tree = self.tree_cache.get(dag_ins.id)
        if tree is None:
            logger.info(f"No task tree cached for run {dag_ins.id}, rebuilding")
            tree = await self.executor.update_task_tree(dag_ins)
        return tree

    async def _dependencies_done(self, task: TaskInstance) -> bool:
        """
        True when every dependency is success/skipped.

        Raises:
            DependencyFailedError: a dependency failed
        """
        if not task.depend_on:
            return True

        tasks = await self.store.list_task_instances(task.dag_ins_id)
        by_task_id = {t.task_id: t for t in tasks}
        waiting = False
        for dep in task.depend_on:
            dependency = by_task_id.get(dep)
            if dependency is None:
                logger.info(f"Dependency {dep} of {task.task_id} not created yet")
                waiting = True
                continue
            if dependency.status == TaskInstanceStatus.FAILED:
                raise DependencyFailedError(task.task_id, dep, dependency.status.value)
            if not dependency.status.is_satisfied():
                waiting = True

        if waiting:
            logger.debug(f"Loop task {task.task_id} waiting on dependencies")
        return not waiting

    @staticmethod
    def _iteration_values(params: LoopParameters):
        values = {"index": params.current_iteration}
        if params.mode == LoopMode.ARRAY:
            values["value"] = params.value_at(params.current_iteration)
        return values

    def _publish_iteration(self, dag_ins: DagInstance, task: TaskInstance, params: LoopParameters) -> None:
        """Publish index/value of this iteration unless already published."""
        share = dag_ins.share_data
        iteration_key = ShareKey.iteration_values(task.task_id)
        if share.contains(iteration_key):
            logger.debug(f"Iteration values for {task.task_id} already published")
            return

        values = self._iteration_values(params)
        base = params.loop_task_id
        share.set(ShareKey.loop_index(base), params.current_iteration)
        share.set(ShareKey.loop_value(base), values.get("value"))
        share.set(ShareKey.loop_values(base), values)
        share.set(iteration_key, values)
        share.set(ShareKey.loop_field(base, "current_iteration"), params.current_iteration)
        logger.info(f"Published loop {base} index {params.current_iteration}")


__all__ = ["LoopHandler", "LoopOutcome"]
