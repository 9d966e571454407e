# ============================================================================
# TASK TREE CACHE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Service - Per-run task tree cache
# PURPOSE: Hold the current TaskTree of each DAG run
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Task Tree Cache

Maps run id -> TaskTree. Entries are patched in place between rebuilds
and dropped with invalidate() when the tree is known to be stale.
"""

import threading
from typing import TYPE_CHECKING, Dict, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from orchestrator.engine.task_tree import TaskTree


@runtime_checkable
class TaskTreeCache(Protocol):

    def get(self, run_id: str) -> Optional["TaskTree"]:
        ...

    def store(self, run_id: str, tree: "TaskTree") -> None:
        ...

    def invalidate(self, run_id: str) -> None:
        ...


class InMemoryTaskTreeCache:
    """Dict-backed cache guarded by a lock."""

    def __init__(self):
        self._trees: Dict[str, "TaskTree"] = {}
        self._lock = threading.Lock()

    def get(self, run_id: str) -> Optional["TaskTree"]:
        with self._lock:
            return self._trees.get(run_id)

    def store(self, run_id: str, tree: "TaskTree") -> None:
        with self._lock:
            self._trees[run_id] = tree

    def invalidate(self, run_id: str) -> None:
        with self._lock:
            self._trees.pop(run_id, None)

    def __contains__(self, run_id: str) -> bool:
        with self._lock:
            return run_id in self._trees


__all__ = ["TaskTreeCache", "InMemoryTaskTreeCache"]
