# ============================================================================
# ITERATION TASK KEY TESTS
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Tests - Loop-generated TaskID encoding
# PURPOSE: Verify encode/parse of control, body and nested branch keys
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Iteration Task Key Tests

Covers:
1. Control copy, body step and nested branch layouts
2. Parsing ids that are not loop-generated
3. Escaping of underscores in base and step ids
4. Iteration prefixes and base lookup

Run with:
    pytest tests/test_task_key.py -v
"""

import pytest

from core.models import IterationTaskKey, ShareKey, base_of, iteration_prefix


# ============================================================================
# ENCODING
# ============================================================================

class TestEncode:
    """Layout of generated TaskIDs."""

    def test_control_copy(self):
        assert IterationTaskKey.control("1001", 3).encode() == "1001_i3"

    def test_body_step(self):
        assert IterationTaskKey("1001", 0, "2").encode() == "1001_i0_s2"

    def test_nested_branch_steps(self):
        key = IterationTaskKey("1001", 1, "3").child(0, "p").child(1, "x")
        assert key.encode() == "1001_i1_s3_0_p_1_x"
        assert key.leaf_step_id == "x"

    def test_str_is_encoding(self):
        assert str(IterationTaskKey("L", 2, "a")) == "L_i2_sa"

    def test_underscores_escaped(self):
        assert IterationTaskKey("loop_1", 0, "a").encode() == "loop%5F1_i0_sa"
        assert IterationTaskKey("L", 0, "a_b").encode() == "L_i0_sa%5Fb"

    def test_control_has_no_branches(self):
        with pytest.raises(ValueError):
            IterationTaskKey.control("L", 1).child(0, "x")


# ============================================================================
# PARSING
# ============================================================================

class TestParse:
    """TaskIDs back to structured keys."""

    def test_control_copy(self):
        key = IterationTaskKey.parse("1001_i4")
        assert key == IterationTaskKey("1001", 4)
        assert key.is_control
        assert key.leaf_step_id is None

    def test_body_step(self):
        key = IterationTaskKey.parse("1001_i0_s2")
        assert key.base_id == "1001"
        assert key.iteration == 0
        assert key.step_id == "2"
        assert not key.is_control

    def test_nested_path(self):
        key = IterationTaskKey.parse("1001_i0_s3_1_4")
        assert key.branch_path == ((1, "4"),)
        assert key.leaf_step_id == "4"

    @pytest.mark.parametrize("task_id", [
        "1001",
        "1001_x",
        "1001_i",
        "1001_iX",
        "loop_1",
        "_i0",
        "1001_i0_2",
        "1001_i0_s",
        "1001_i0_s3_1",
        "1001_i0_s3_a_4",
    ])
    def test_not_a_loop_id(self, task_id):
        assert IterationTaskKey.parse(task_id) is None

    @pytest.mark.parametrize("key", [
        IterationTaskKey("loop_1", 0, "a"),
        IterationTaskKey("a%b", 7, "c_d"),
        IterationTaskKey("x_y", 2, "s_1").child(3, "p_q").child(0, "r"),
        IterationTaskKey.control("with_underscore", 12),
    ])
    def test_escaped_ids_parse_back(self, key):
        assert IterationTaskKey.parse(key.encode()) == key


# ============================================================================
# PREFIX / BASE
# ============================================================================

class TestNamespace:
    """Per-iteration namespaces."""

    def test_prefix_matches_body_not_control(self):
        prefix = iteration_prefix("1001", 1)
        assert "1001_i1_s2".startswith(prefix)
        assert not "1001_i1".startswith(prefix)
        assert not "1001_i10_s2".startswith(prefix)

    def test_prefix_escapes_base(self):
        assert iteration_prefix("loop_1", 0) == "loop%5F1_i0_"

    def test_base_of(self):
        assert base_of("1001_i3_s2_0_x") == "1001"
        assert base_of("1001_i3") == "1001"
        assert base_of("plain") == "plain"


class TestShareKey:
    """ShareData key strings."""

    def test_key_strings(self):
        assert str(ShareKey.task_values("1001_i0_s2")) == "__1001_i0_s2"
        assert str(ShareKey.loop_values("1001")) == "__1001"
        assert str(ShareKey.loop_index("1001")) == "__loop_1001_index"
        assert str(ShareKey.loop_field("1001", "dependent_tasks")) == "__loop_1001_dependent_tasks"
