# ============================================================================
# WORKFLOW SERVICE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Service - DAG definition management
# PURPOSE: Load and cache DAG definitions
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Workflow Service

Loads DAG definitions from YAML files and caches them by id.
Definition files live in the workflows/ directory by default.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import yaml
from pydantic import ValidationError

from core.models import DagDefinition, Step

logger = logging.getLogger(__name__)


class WorkflowService:
    """Service for loading and managing DAG definitions."""

    def __init__(self, workflows_dir: Optional[str] = None):
        """
        Args:
            workflows_dir: Directory containing definition YAML files.
                           Defaults to ./workflows/
        """
        if workflows_dir:
            self.workflows_dir = Path(workflows_dir)
        else:
            self.workflows_dir = Path(__file__).parent.parent / "workflows"

        self._cache: Dict[str, DagDefinition] = {}
        self._loaded = False

    def load_all(self) -> int:
        """
        Load every *.yaml / *.yml definition in the directory.

        Files that fail to parse or validate are logged and skipped.

        Returns:
            Number of definitions loaded
        """
        self._loaded = True
        if not self.workflows_dir.exists():
            logger.warning(f"Workflows directory not found: {self.workflows_dir}")
            return 0

        count = 0
        files = sorted(self.workflows_dir.glob("*.yaml")) + sorted(self.workflows_dir.glob("*.yml"))
        for yaml_file in files:
            try:
                dag = self._load_yaml(yaml_file)
            except (OSError, yaml.YAMLError, ValidationError, ValueError) as e:
                logger.error(f"Failed to load {yaml_file}: {e}")
                continue
            self._cache[dag.id] = dag
            count += 1
            logger.info(f"Loaded DAG: {dag.id} v{dag.version}")

        logger.info(f"Loaded {count} DAGs from {self.workflows_dir}")
        return count

    def get(self, dag_id: str) -> Optional[DagDefinition]:
        if not self._loaded:
            self.load_all()
        return self._cache.get(dag_id)

    def get_or_raise(self, dag_id: str) -> DagDefinition:
        """
        Raises:
            KeyError if the DAG is not known
        """
        dag = self.get(dag_id)
        if dag is None:
            raise KeyError(f"DAG not found: {dag_id}")
        return dag

    def list_all(self) -> List[DagDefinition]:
        if not self._loaded:
            self.load_all()
        return list(self._cache.values())

    def register(self, dag: DagDefinition) -> None:
        """Register a definition programmatically (tests, embedding)."""
        errors = dag.validate_structure()
        if errors:
            raise ValueError(f"Invalid DAG: {errors}")
        self._cache[dag.id] = dag
        logger.info(f"Registered DAG: {dag.id}")

    def find_step(self, dag: DagDefinition, step_id: str) -> Optional[Step]:
        """Find a step anywhere in a DAG, including branch and loop bodies."""
        return find_step(dag.steps, step_id)

    def _load_yaml(self, path: Path) -> DagDefinition:
        with open(path) as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"{path} does not contain a mapping")

        dag = DagDefinition(**data)
        errors = dag.validate_structure()
        if errors:
            raise ValueError(f"Invalid DAG in {path}: {errors}")
        return dag

    def reload(self) -> int:
        self._cache.clear()
        self._loaded = False
        return self.load_all()


def find_step(steps: Sequence[Step], step_id: str) -> Optional[Step]:
    """Depth-first search through steps, their branches and loop bodies."""
    for step in steps:
        if step.id == step_id:
            return step
        found = find_step(step.steps, step_id)
        if found is not None:
            return found
        for branch in step.branches:
            found = find_step(branch.steps, step_id)
            if found is not None:
                return found
    return None


__all__ = ["WorkflowService", "find_step"]
