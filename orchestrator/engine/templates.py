# ============================================================================
# TEMPLATE RESOLUTION ENGINE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Engine - Template resolution with Jinja2
# PURPOSE: Resolve {{ }} expressions in task params against ShareData
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Template Resolution Engine

Renders {{ }} expressions in task parameters. The environment is the
run's ShareData plus two injected loop names:

- index / __loop_index: the iteration a task belongs to

Examples:
    params:
      page: "{{ index }}"                       -> 3 (native int)
      label: "page-{{ index }}"                 -> "page-3"
      text: "{{ __1001_i0_s2.text }}"           -> value from ShareData

A template that is a single expression returns a native value; mixed
content renders to a string. ShareData keys that are not valid Jinja
names remain reachable through `share_data["<key>"]`.
"""

import ast
import logging
from typing import Any, Dict, List, Optional

from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateSyntaxError, UndefinedError

from core.models import DagInstance, IterationTaskKey, LoopParameters, ShareKey, TaskInstance, base_of

logger = logging.getLogger(__name__)


class TemplateResolutionError(Exception):
    """Raised when template resolution fails."""
    pass


class TemplateResolver:
    """
    Jinja2-based template resolver.

    Thread-safe, can be reused across multiple resolutions.
    """

    def __init__(self):
        self._env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            undefined=StrictUndefined,
        )

    def resolve(self, value: Any, context: Dict[str, Any]) -> Any:
        """
        Recursively resolve template expressions in a value.

        Raises:
            TemplateResolutionError: If a template cannot be resolved
        """
        if isinstance(value, str):
            return self._resolve_string(value, context)
        if isinstance(value, dict):
            return {k: self.resolve(v, context) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve(item, context) for item in value]
        return value

    def _resolve_string(self, value: str, context: Dict[str, Any]) -> Any:
        if "{{" not in value:
            return value

        stripped = value.strip()
        single = (
            stripped.startswith("{{")
            and stripped.endswith("}}")
            and "{{" not in stripped[2:-2]
            and "}}" not in stripped[2:-2]
        )

        try:
            rendered = self._env.from_string(value).render(context)
        except (TemplateSyntaxError, UndefinedError) as e:
            raise TemplateResolutionError(f"Failed to resolve '{value}': {e}") from e

        return self._native(rendered) if single else rendered

    @staticmethod
    def _native(result: str) -> Any:
        """Parse a rendered single expression back into a Python value."""
        result = result.strip()
        if not result:
            return result

        if result[0] in "[{(" or result in ("True", "False", "None"):
            try:
                return ast.literal_eval(result)
            except (ValueError, SyntaxError):
                return result

        try:
            if "." in result:
                return float(result)
            return int(result)
        except ValueError:
            return result


# ============================================================================
# LOOP ENVIRONMENT
# ============================================================================

def _loop_index(task: TaskInstance, dag_ins: DagInstance) -> Optional[int]:
    """
    Iteration a task belongs to.

    The task's own current_iteration param wins, then the iteration
    encoded in its TaskID. ShareData is only a fallback so parallel
    tasks never race on a shared counter.
    """
    current = task.get_param("current_iteration")
    if current is not None:
        return current

    key = IterationTaskKey.parse(task.task_id)
    if key is not None:
        return key.iteration

    return dag_ins.share_data.get(ShareKey.loop_index(base_of(task.task_id)))


def build_context(dag_ins: DagInstance, index: Optional[int] = None) -> Dict[str, Any]:
    """Rendering environment: ShareData entries plus loop index names."""
    snapshot = dag_ins.share_data.snapshot()
    context: Dict[str, Any] = dict(snapshot)
    context["share_data"] = snapshot
    if index is not None:
        context["index"] = index
        context["__loop_index"] = index
    return context


_resolver: Optional[TemplateResolver] = None


def get_resolver() -> TemplateResolver:
    """Get shared template resolver instance."""
    global _resolver
    if _resolver is None:
        _resolver = TemplateResolver()
    return _resolver


def render_task_params(task: TaskInstance, dag_ins: DagInstance) -> Dict[str, Any]:
    """
    Render a task's params before it runs.

    Returns:
        New params dict; the task is not modified

    Raises:
        TemplateResolutionError: unknown name or bad syntax
    """
    context = build_context(dag_ins, _loop_index(task, dag_ins))
    return get_resolver().resolve(task.params, context)


def render_loop_outputs(params: LoopParameters, dag_ins: DagInstance) -> List[Dict[str, Any]]:
    """
    Evaluate a loop's output templates against the current ShareData.

    An output that cannot be rendered is recorded as None.

    Returns:
        [{"key": ..., "value": ...}] in output order
    """
    resolver = get_resolver()
    context = build_context(dag_ins, params.current_iteration)
    rendered = []
    for output in params.outputs:
        try:
            value = resolver.resolve(output.value, context)
        except TemplateResolutionError as e:
            logger.warning(f"Loop output '{output.key}' not rendered: {e}")
            value = None
        rendered.append({"key": output.key, "value": value})
    return rendered


__all__ = [
    "TemplateResolver",
    "TemplateResolutionError",
    "build_context",
    "get_resolver",
    "render_task_params",
    "render_loop_outputs",
]
