# ============================================================================
# EVENT RECONSTRUCTION TESTS
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Tests - Event-sourced task state
# PURPOSE: Verify task instances rebuilt from interleaved event logs
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Event Reconstruction Tests

Covers:
1. Interleaved parallel events (blocked -> trace -> variable -> success)
2. Sequential two-task stream
3. Variable/Trace events arriving before the first status event
4. Malformed events skipped without aborting
5. Loop-generated TaskIDs resolved to their body steps
6. HistoryService wiring (event repo -> reconstruct)

Run with:
    pytest tests/test_reconstructor.py -v
"""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.contracts import TaskInstanceStatus
from core.models import DagDefinition, DagInstance, Step, TaskStatusEvent, decode_event
from orchestrator.engine.reconstructor import reconstruct
from services.history_service import HistoryService


# ============================================================================
# FIXTURES
# ============================================================================

def status(task_id, value, operator="@internal/tool/py3", ts=0):
    return {"type": "TaskStatus", "task_id": task_id, "operator": operator, "status": value, "timestamp": ts}


def variable(task_id, data, ts=0):
    return {"type": "Variable", "name": f"__{task_id}", "data": data, "timestamp": ts}


def trace(task_id, duration, ts=0):
    return {
        "type": "Trace",
        "task_id": task_id,
        "name": f"__{task_id}_trace",
        "data": {"attempts": 0, "duration": duration, "max_retry": 3},
        "timestamp": ts,
    }


@pytest.fixture
def dag_ins():
    return DagInstance(id="test-dag-ins")


@pytest.fixture
def parallel_dag():
    return DagDefinition(
        id="parallel",
        steps=[
            Step(id="0", title="Trigger", operator="@trigger/dataflow-doc"),
            Step(id="1006", title="Split Text", operator="@internal/text/split"),
            Step(id="1009", title="Python Script A", operator="@internal/tool/py3"),
            Step(id="1010", title="Python Script B", operator="@internal/tool/py3"),
            Step(id="1008", title="Join Text", operator="@internal/text/join"),
        ],
    )


@pytest.fixture
def parallel_events():
    """Real-shaped stream: 1009 and 1010 run side by side."""
    return [
        status("0", "running", "@trigger/dataflow-doc", 1769762005630182),
        variable("0", {"name": "doc.pdf"}, 1769762005688897),
        status("0", "success", "@trigger/dataflow-doc", 1769762005694425),
        trace("0", 71, 1769762005696705),

        status("1006", "running", "@internal/text/split", 1769762005703635),
        variable("1006", {"slices": "{\"0\":\"123\"}"}, 1769762005705726),
        status("1006", "success", "@internal/text/split", 1769762005709578),
        trace("1006", 7, 1769762005711287),

        status("1010", "blocked", ts=1769762005719755),
        status("1009", "blocked", ts=1769762005720916),
        trace("1010", 12, 1769762005730100),
        trace("1009", 17, 1769762005737922),
        variable("1010", {"b": 1}, 1769762205875170),
        status("1010", "success", ts=1769762205876861),
        variable("1009", {"a": 1}, 1769762205881930),
        status("1009", "success", ts=1769762205883099),

        status("1008", "running", "@internal/text/join", 1769762207604973),
        variable("1008", {"text": "11"}, 1769762207606522),
        status("1008", "success", "@internal/text/join", 1769762207609781),
        trace("1008", 6, 1769762207611207),
    ]


# ============================================================================
# PARALLEL / SEQUENTIAL STREAMS
# ============================================================================

class TestInterleavedEvents:
    """Parallel tasks interleave their events."""

    def test_one_instance_per_task_in_first_status_order(self, parallel_events, dag_ins, parallel_dag):
        tasks = reconstruct(parallel_events, dag_ins, parallel_dag)
        assert [t.task_id for t in tasks] == ["0", "1006", "1010", "1009", "1008"]

    def test_final_status_wins(self, parallel_events, dag_ins, parallel_dag):
        tasks = {t.task_id: t for t in reconstruct(parallel_events, dag_ins, parallel_dag)}
        assert all(t.status == TaskInstanceStatus.SUCCESS for t in tasks.values())

    def test_results_attached_to_owning_task(self, parallel_events, dag_ins, parallel_dag):
        tasks = {t.task_id: t for t in reconstruct(parallel_events, dag_ins, parallel_dag)}
        assert tasks["1009"].results == {"a": 1}
        assert tasks["1010"].results == {"b": 1}
        assert tasks["1006"].results == {"slices": "{\"0\":\"123\"}"}

    def test_trace_metadata_merged(self, parallel_events, dag_ins, parallel_dag):
        tasks = {t.task_id: t for t in reconstruct(parallel_events, dag_ins, parallel_dag)}
        assert tasks["1009"].metadata.duration == 17
        assert tasks["1010"].metadata.duration == 12
        assert tasks["1009"].metadata.max_retry == 3
        assert tasks["1009"].metadata.attempts == 0

    def test_title_and_operator_from_definition(self, parallel_events, dag_ins, parallel_dag):
        tasks = {t.task_id: t for t in reconstruct(parallel_events, dag_ins, parallel_dag)}
        assert tasks["1006"].name == "Split Text"
        assert tasks["1006"].action_name == "@internal/text/split"
        assert tasks["1009"].dag_ins_id == "test-dag-ins"

    def test_order_ignores_timestamps(self, parallel_events, dag_ins, parallel_dag):
        """Reversing timestamps does not change the output order."""
        for event in parallel_events:
            event["timestamp"] = -event["timestamp"]
        tasks = reconstruct(parallel_events, dag_ins, parallel_dag)
        assert [t.task_id for t in tasks] == ["0", "1006", "1010", "1009", "1008"]


class TestSequentialEvents:
    """Back-compat: one task after another."""

    def test_two_tasks_in_emission_order(self, dag_ins):
        dag = DagDefinition(
            id="seq",
            steps=[
                Step(id="1", title="Task 1", operator="op1"),
                Step(id="2", title="Task 2", operator="op2"),
            ],
        )
        events = [
            status("1", "running", "op1", 1000),
            variable("1", {"result": "a"}, 2000),
            status("1", "success", "op1", 3000),
            status("2", "running", "op2", 4000),
            variable("2", {"result": "b"}, 5000),
            status("2", "success", "op2", 6000),
        ]

        tasks = reconstruct(events, dag_ins, dag)

        assert len(tasks) == 2
        assert [t.task_id for t in tasks] == ["1", "2"]
        assert [t.status for t in tasks] == [TaskInstanceStatus.SUCCESS] * 2
        assert tasks[1].results == {"result": "b"}


# ============================================================================
# EARLY / LATE EVENTS
# ============================================================================

class TestEventArrivalOrder:
    """Variable and Trace events may precede the status event."""

    def test_variable_before_status(self, dag_ins):
        events = [
            variable("5", {"x": 1}),
            trace("5", 3),
            status("4", "success"),
            status("5", "success"),
        ]
        tasks = reconstruct(events, dag_ins)
        assert [t.task_id for t in tasks] == ["4", "5"]
        assert tasks[1].results == {"x": 1}
        assert tasks[1].metadata.duration == 3

    def test_variables_merge(self, dag_ins):
        events = [
            status("5", "running"),
            variable("5", {"x": 1}),
            variable("5", {"y": 2}),
            status("5", "success"),
        ]
        task = reconstruct(events, dag_ins)[0]
        assert task.results == {"x": 1, "y": 2}

    def test_unconfirmed_known_step_kept_at_end(self, dag_ins):
        dag = DagDefinition(id="d", steps=[Step(id="1", operator="op"), Step(id="2", title="Later", operator="op")])
        events = [variable("2", {"x": 1}), status("1", "success")]

        tasks = reconstruct(events, dag_ins, dag)

        assert [t.task_id for t in tasks] == ["1", "2"]
        assert tasks[1].status == TaskInstanceStatus.INIT
        assert tasks[1].name == "Later"

    def test_unconfirmed_unknown_task_dropped(self, dag_ins, caplog):
        events = [status("1", "success"), variable("ghost", {"x": 1})]
        with caplog.at_level(logging.WARNING):
            tasks = reconstruct(events, dag_ins)
        assert [t.task_id for t in tasks] == ["1"]
        assert "ghost" in caplog.text

    def test_variable_without_task_prefix_ignored(self, dag_ins):
        events = [
            status("1", "success"),
            {"type": "Variable", "name": "counter", "data": {"n": 1}},
        ]
        tasks = reconstruct(events, dag_ins)
        assert len(tasks) == 1
        assert tasks[0].results is None


# ============================================================================
# MALFORMED EVENTS
# ============================================================================

class TestMalformedEvents:
    """Bad events are logged and skipped."""

    def test_bad_events_skipped(self, dag_ins, caplog):
        events = [
            status("1", "running"),
            {"type": "Bogus", "task_id": "1"},
            {"type": "TaskStatus", "task_id": "2"},
            {"type": "TaskStatus", "task_id": "3", "status": "exploded"},
            {"type": "Variable", "name": "__1", "data": "{not json"},
            None,
            status("1", "success"),
        ]
        with caplog.at_level(logging.WARNING):
            tasks = reconstruct(events, dag_ins)

        assert [t.task_id for t in tasks] == ["1"]
        assert tasks[0].status == TaskInstanceStatus.SUCCESS
        assert caplog.text.count("Skipping") == 5

    @pytest.mark.parametrize("metadata", [{"duration": 12.5}, {"max_retry": -1}])
    def test_invalid_trace_metadata_skipped(self, dag_ins, caplog, metadata):
        events = [
            status("1", "success"),
            {"type": "Trace", "task_id": "1", "name": "__1_trace", "data": metadata},
            trace("1", 9),
            status("2", "success"),
        ]
        with caplog.at_level(logging.WARNING):
            tasks = reconstruct(events, dag_ins)

        assert [t.task_id for t in tasks] == ["1", "2"]
        assert tasks[0].metadata.duration == 9
        assert tasks[0].metadata.max_retry == 3
        assert "Skipping event #1" in caplog.text

    def test_json_string_payload_decoded(self, dag_ins):
        events = [status("1", "success"), {"type": "Variable", "name": "__1", "data": "{\"k\": 2}"}]
        assert reconstruct(events, dag_ins)[0].results == {"k": 2}

    def test_lower_case_type_names_accepted(self):
        event = decode_event({"type": "task_status", "task_id": "1", "status": "success"})
        assert isinstance(event, TaskStatusEvent)


# ============================================================================
# LOOP TASK IDS
# ============================================================================

class TestLoopTaskIds:
    """Generated ids resolve to the steps they came from."""

    def test_body_and_control_ids_resolved(self, dag_ins):
        dag = DagDefinition(
            id="loop",
            steps=[
                Step(
                    id="1001",
                    title="Pages",
                    operator="@control/flow/loop",
                    steps=[Step(id="2", title="Convert page", operator="@internal/tool/py3")],
                ),
            ],
        )
        events = [
            status("1001", "success", "@control/flow/loop"),
            status("1001_i0_s2", "success"),
            status("1001_i1", "running", None),
            variable("1001_i1_s2", {"page": 1}),
        ]

        tasks = {t.task_id: t for t in reconstruct(events, dag_ins, dag)}

        assert tasks["1001_i0_s2"].name == "Convert page"
        assert tasks["1001_i1"].name == "Pages"
        assert tasks["1001_i1"].action_name == "@control/flow/loop"
        # Placeholder resolvable through its body step
        assert tasks["1001_i1_s2"].status == TaskInstanceStatus.INIT


# ============================================================================
# HISTORY SERVICE
# ============================================================================

class TestHistoryService:
    """Event repo -> reconstruct."""

    def test_history_uses_run_events(self, parallel_events, parallel_dag):
        event_repo = MagicMock()
        event_repo.list_for_run = AsyncMock(return_value=parallel_events)
        workflows = MagicMock()
        workflows.get.return_value = parallel_dag

        service = HistoryService(event_repo, workflows)
        dag_ins = DagInstance(id="run-7", dag_id="parallel")

        tasks = asyncio.run(service.get_task_history(dag_ins))

        event_repo.list_for_run.assert_awaited_once_with("run-7")
        workflows.get.assert_called_once_with("parallel")
        assert [t.task_id for t in tasks] == ["0", "1006", "1010", "1009", "1008"]

    def test_history_without_definition(self, parallel_events):
        event_repo = MagicMock()
        event_repo.list_for_run = AsyncMock(return_value=parallel_events)
        workflows = MagicMock()
        workflows.get.return_value = None

        service = HistoryService(event_repo, workflows)
        tasks = asyncio.run(service.get_task_history(DagInstance(id="run-8", dag_id="gone")))

        assert len(tasks) == 5
        assert tasks[0].name == ""
