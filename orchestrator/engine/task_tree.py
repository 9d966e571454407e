# ============================================================================
# TASK TREE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Engine - Derived dependency index over task instances
# PURPOSE: Compute the executable frontier of a DAG run
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: TaskNode, TaskTree, build_root_node, walk_node, update_node_status,
#          dedupe_task_instances
# ============================================================================
"""
Task Tree

A rebuildable index over the flat TaskInstance list of one run. Edges
come from depend_on:

    A -> B means "B depends on A" (A must finish before B runs).

A virtual root node sits above every task without dependencies, so a
single walk from the root reaches the whole run. The tree is a cache:
the task list in the store stays the source of truth and the tree is
thrown away and rebuilt whenever it goes missing or duplicates show up.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from core.contracts import TaskInstanceStatus
from core.models import DagInstance, TaskInstance
from orchestrator.errors import TaskTreeError

logger = logging.getLogger(__name__)

ROOT_TASK_ID = "__root__"


# ============================================================================
# NODES
# ============================================================================

@dataclass(eq=False)
class TaskNode:
    """One task in the tree; the root node has an empty task_ins_id."""
    task_ins_id: str
    task_id: str
    status: TaskInstanceStatus = TaskInstanceStatus.INIT
    parents: List["TaskNode"] = field(default_factory=list)
    children: List["TaskNode"] = field(default_factory=list)
    # depend_on entries with no matching task in the run
    unresolved: List[str] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.task_id == ROOT_TASK_ID

    def dependencies_met(self) -> bool:
        """All parents are success/skipped and no dependency is unknown."""
        if self.unresolved:
            return False
        return all(p.is_root or p.status.is_satisfied() for p in self.parents)

    def is_executable(self) -> bool:
        return (
            not self.is_root
            and self.status == TaskInstanceStatus.INIT
            and self.dependencies_met()
        )

    def executable_task_ids(self) -> List[str]:
        """Store ids of every executable node reachable from this node."""
        found: List[str] = []

        def collect(node: "TaskNode") -> bool:
            if node.is_executable():
                found.append(node.task_ins_id)
            return True

        walk_node(self, collect)
        return found


@dataclass
class TaskTree:
    """Task tree of one DAG run."""
    dag_ins: DagInstance
    root: TaskNode

    @classmethod
    def build(cls, dag_ins: DagInstance, tasks: Sequence[TaskInstance]) -> "TaskTree":
        return cls(dag_ins=dag_ins, root=build_root_node(tasks))

    def find(self, task_ins_id: str) -> Optional[TaskNode]:
        """Find a node by store id."""
        match: List[TaskNode] = []

        def check(node: TaskNode) -> bool:
            if node.task_ins_id == task_ins_id and not node.is_root:
                match.append(node)
                return False
            return True

        walk_node(self.root, check)
        return match[0] if match else None

    def executable_task_ids(self) -> List[str]:
        return self.root.executable_task_ids()


# ============================================================================
# BUILD / WALK
# ============================================================================

def build_root_node(tasks: Sequence[TaskInstance]) -> TaskNode:
    """
    Build the tree for a run's tasks and return its virtual root.

    Raises:
        TaskTreeError: duplicate TaskIDs or a dependency cycle
    """
    root = TaskNode(task_ins_id="", task_id=ROOT_TASK_ID, status=TaskInstanceStatus.SUCCESS)

    nodes: Dict[str, TaskNode] = {}
    for task in tasks:
        if task.task_id in nodes:
            raise TaskTreeError(f"Duplicate task_id '{task.task_id}' in task list")
        nodes[task.task_id] = TaskNode(
            task_ins_id=task.id,
            task_id=task.task_id,
            status=task.status,
        )

    in_degree: Dict[str, int] = {task_id: 0 for task_id in nodes}
    for task in tasks:
        node = nodes[task.task_id]
        seen = set()
        for dep in task.depend_on:
            if dep in seen:
                continue
            seen.add(dep)
            parent = nodes.get(dep)
            if parent is None:
                node.unresolved.append(dep)
                continue
            parent.children.append(node)
            node.parents.append(parent)
            in_degree[task.task_id] += 1

        if not node.parents:
            node.parents.append(root)
            root.children.append(node)

    # Kahn's algorithm: anything left unvisited sits on a cycle
    queue = deque(task_id for task_id, degree in in_degree.items() if degree == 0)
    visited = 0
    while queue:
        current = nodes[queue.popleft()]
        visited += 1
        for child in current.children:
            in_degree[child.task_id] -= 1
            if in_degree[child.task_id] == 0:
                queue.append(child.task_id)

    if visited != len(nodes):
        cyclic = sorted(task_id for task_id, degree in in_degree.items() if degree > 0)
        raise TaskTreeError(f"Dependency cycle among tasks: {cyclic}")

    for node in nodes.values():
        if node.unresolved:
            logger.debug(f"Task {node.task_id} depends on unknown tasks {node.unresolved}")

    return root


def walk_node(
    root: TaskNode,
    fn: Callable[[TaskNode], bool],
    breadth_first: bool = True,
) -> None:
    """
    Visit every node reachable from root once.

    The walk stops as soon as fn returns False.
    """
    pending = deque([root])
    visited = set()
    while pending:
        node = pending.popleft() if breadth_first else pending.pop()
        if id(node) in visited:
            continue
        visited.add(id(node))
        if not fn(node):
            return
        children = node.children if breadth_first else reversed(node.children)
        pending.extend(children)


def update_node_status(tree: TaskTree, task_ins_id: str, status: TaskInstanceStatus) -> bool:
    """Patch one node's status in place. Returns False if the node is not in the tree."""
    node = tree.find(task_ins_id)
    if node is None:
        return False
    node.status = status
    return True


def dedupe_task_instances(
    tasks: Sequence[TaskInstance],
) -> Tuple[List[TaskInstance], List[str]]:
    """
    Drop repeated TaskIDs, first occurrence wins.

    Returns:
        (unique tasks in original order, store ids of the dropped duplicates)
    """
    unique: List[TaskInstance] = []
    duplicates: List[str] = []
    seen = set()
    for task in tasks:
        if task.task_id in seen:
            duplicates.append(task.id)
            continue
        seen.add(task.task_id)
        unique.append(task)
    return unique, duplicates


__all__ = [
    "TaskNode",
    "TaskTree",
    "ROOT_TASK_ID",
    "build_root_node",
    "walk_node",
    "update_node_status",
    "dedupe_task_instances",
]
