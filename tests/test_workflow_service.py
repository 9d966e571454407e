# ============================================================================
# WORKFLOW SERVICE TESTS
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Tests - DAG definition loading
# PURPOSE: Verify YAML loading, validation and nested step lookup
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Workflow Service Tests

Covers:
1. Loading YAML definitions from a directory
2. Invalid files logged and skipped
3. Programmatic registration with validation
4. Step lookup through branches and loop bodies
5. The bundled paged_export definition

Run with:
    pytest tests/test_workflow_service.py -v
"""

import pytest

from core.contracts import StepOperator
from core.models import DagDefinition, Step
from services.workflow_service import WorkflowService, find_step


# ============================================================================
# FIXTURES
# ============================================================================

LOOP_YAML = """
id: pages
name: Pages
steps:
  - id: "0"
    operator: "@trigger/manual"
  - id: "1001"
    title: Loop
    operator: "@control/flow/loop"
    parameters:
      limit: 2
    steps:
      - id: "2"
        title: Inner
        operator: "@internal/tool/py3"
      - id: "3"
        operator: "@control/flow/branches"
        branches:
          - conditions: [[{op: eq, left: 1, right: 1}]]
            steps:
              - id: "4"
                title: Deep
                operator: "@internal/tool/py3"
"""


@pytest.fixture
def workflows_dir(tmp_path):
    (tmp_path / "pages.yaml").write_text(LOOP_YAML)
    (tmp_path / "broken.yaml").write_text("id: [unclosed\n")
    (tmp_path / "invalid.yml").write_text(
        "id: bad\nsteps:\n  - id: x\n    operator: '@control/flow/loop'\n"
    )
    (tmp_path / "scalar.yaml").write_text("just a string\n")
    return tmp_path


@pytest.fixture
def service(workflows_dir):
    return WorkflowService(str(workflows_dir))


# ============================================================================
# LOADING
# ============================================================================

class TestLoad:
    """Definitions from disk."""

    def test_only_valid_files_loaded(self, service):
        assert service.load_all() == 1
        assert [d.id for d in service.list_all()] == ["pages"]

    def test_lazy_load_on_get(self, service):
        dag = service.get("pages")
        assert dag is not None
        assert dag.steps[1].is_loop
        assert dag.steps[1].parameters == {"limit": 2}

    def test_unknown_dag(self, service):
        assert service.get("nope") is None
        with pytest.raises(KeyError):
            service.get_or_raise("nope")

    def test_missing_directory(self, tmp_path):
        assert WorkflowService(str(tmp_path / "absent")).load_all() == 0

    def test_reload_picks_up_new_files(self, service, workflows_dir):
        service.load_all()
        (workflows_dir / "second.yaml").write_text("id: second\nsteps: []\n")
        assert service.reload() == 2

    def test_bundled_definition(self):
        dag = WorkflowService().get_or_raise("paged_export")
        loop = dag.find_step("1001")
        assert loop.operator == StepOperator.LOOP
        assert loop.parameters["mode"] == "array"
        assert [s.id for s in loop.steps] == ["2", "3"]


class TestRegister:
    """Programmatic definitions."""

    def test_register_valid(self, tmp_path):
        service = WorkflowService(str(tmp_path))
        service.register(DagDefinition(id="inline", steps=[Step(id="a", operator="op")]))
        assert service.get("inline").steps[0].id == "a"

    def test_register_rejects_duplicate_step_ids(self, tmp_path):
        dag = DagDefinition(id="dup", steps=[Step(id="a", operator="op"), Step(id="a", operator="op")])
        with pytest.raises(ValueError):
            WorkflowService(str(tmp_path)).register(dag)


# ============================================================================
# STEP LOOKUP
# ============================================================================

class TestFindStep:
    """Nested search."""

    def test_loop_body_step(self, service):
        dag = service.get("pages")
        assert service.find_step(dag, "2").title == "Inner"

    def test_step_inside_branch_inside_loop(self, service):
        dag = service.get("pages")
        assert service.find_step(dag, "4").title == "Deep"
        assert find_step(dag.steps, "4") is dag.find_step("4")

    def test_missing_step(self, service):
        assert service.find_step(service.get("pages"), "99") is None
