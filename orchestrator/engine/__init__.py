# ============================================================================
# ORCHESTRATOR ENGINE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Engine components
# PURPOSE: Task tree, event reconstruction, loop expansion, templates
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Engine Components

- task_tree: executable frontier over a run's task instances
- reconstructor: task state folded from the event log
- expansion: loop body -> per-iteration task instances
- templates: Jinja2-based template resolution
"""

from orchestrator.engine.task_tree import (
    TaskNode,
    TaskTree,
    build_root_node,
    walk_node,
    update_node_status,
    dedupe_task_instances,
)
from orchestrator.engine.reconstructor import reconstruct
from orchestrator.engine.expansion import (
    StepScope,
    ExpansionContext,
    ExpansionResult,
    expand_steps,
    get_last_task_ids,
)
from orchestrator.engine.templates import (
    TemplateResolver,
    TemplateResolutionError,
    render_task_params,
    render_loop_outputs,
)

__all__ = [
    # Task tree
    "TaskNode",
    "TaskTree",
    "build_root_node",
    "walk_node",
    "update_node_status",
    "dedupe_task_instances",
    # Reconstruction
    "reconstruct",
    # Expansion
    "StepScope",
    "ExpansionContext",
    "ExpansionResult",
    "expand_steps",
    "get_last_task_ids",
    # Templates
    "TemplateResolver",
    "TemplateResolutionError",
    "render_task_params",
    "render_loop_outputs",
]
