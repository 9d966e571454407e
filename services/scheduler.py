# ============================================================================
# TASK SCHEDULER
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Service - Hand-off point to task execution
# PURPOSE: Enqueue executable tasks and track externally cancelled ones
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Task Scheduler

The loop engine never runs tasks itself. It pushes executable tasks to
a TaskScheduler and asks it whether a task has been marked for
cancellation. QueueScheduler is the in-process implementation: an
asyncio.Queue of (dag_ins_id, task_ins_id) pairs that workers drain.
"""

import asyncio
import logging
import threading
from typing import List, Protocol, Set, Tuple, runtime_checkable

from core.models import DagInstance, TaskInstance

logger = logging.getLogger(__name__)


@runtime_checkable
class TaskScheduler(Protocol):
    """What the loop engine needs from the task executor."""

    async def push(self, dag_ins: DagInstance, task: TaskInstance) -> None:
        """Enqueue a task for execution."""
        ...

    def is_cancel_pending(self, task_ins_id: str) -> bool:
        """True when the task was marked for cancellation and must not be pushed."""
        ...

    async def entry_task_ins(self, task: TaskInstance) -> None:
        """A task finished outside loop generation; unblock its dependents."""
        ...


class QueueScheduler:
    """
    asyncio.Queue backed scheduler.

    Pushes and entry notifications are also recorded in order so callers
    can inspect what was handed off.
    """

    def __init__(self, maxsize: int = 0):
        self.queue: "asyncio.Queue[Tuple[str, str]]" = asyncio.Queue(maxsize=maxsize)
        self.pushed: List[Tuple[str, str]] = []
        self.entered: List[str] = []
        self._cancel: Set[str] = set()
        self._cancel_lock = threading.Lock()

    async def push(self, dag_ins: DagInstance, task: TaskInstance) -> None:
        item = (dag_ins.id, task.id)
        await self.queue.put(item)
        self.pushed.append(item)
        logger.debug(f"Pushed task {task.task_id} ({task.id}) for run {dag_ins.id}")

    def is_cancel_pending(self, task_ins_id: str) -> bool:
        with self._cancel_lock:
            return task_ins_id in self._cancel

    def mark_cancel(self, task_ins_id: str) -> None:
        with self._cancel_lock:
            self._cancel.add(task_ins_id)

    def clear_cancel(self, task_ins_id: str) -> None:
        with self._cancel_lock:
            self._cancel.discard(task_ins_id)

    async def entry_task_ins(self, task: TaskInstance) -> None:
        self.entered.append(task.id)
        logger.debug(f"Task {task.task_id} completed outside loop generation")

    @property
    def pushed_ids(self) -> List[str]:
        """Store ids pushed so far, in push order."""
        return [task_ins_id for _, task_ins_id in self.pushed]


__all__ = ["TaskScheduler", "QueueScheduler"]
