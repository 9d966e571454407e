# ============================================================================
# ITERATION TASK KEY
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Core model - Loop-generated TaskID encoding
# PURPOSE: Encode/parse TaskIDs of loop-control copies and iteration tasks
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: IterationTaskKey, iteration_prefix, base_of, KEY_VERSION
# DEPENDENCIES: dataclasses, re
# ============================================================================
"""
Iteration Task Key

Every task a loop creates gets a TaskID derived from the loop's base id:

    <base>_i<N>                         loop-control copy for iteration N
    <base>_i<N>_s<step>                 body step of iteration N
    <base>_i<N>_s<step>_<b>_<step>      step inside branch b of that step
                                        (one "_<b>_<step>" pair per level)

Free-text components (base and step ids) escape "%" and "_" so the
encoding stays parseable when ids themselves contain underscores:

    IterationTaskKey("loop_1", 0, "a").encode() == "loop%5F1_i0_sa"

KEY_VERSION identifies this layout.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

KEY_VERSION = 1

_ITERATION_RE = re.compile(r"^i(\d+)$")


def _escape(value: str) -> str:
    return value.replace("%", "%25").replace("_", "%5F")


def _unescape(value: str) -> str:
    return value.replace("%5F", "_").replace("%25", "%")


@dataclass(frozen=True)
class IterationTaskKey:
    """
    Structured form of a loop-generated TaskID.

    step_id is None for loop-control copies.
    branch_path holds one (branch_index, step_id) pair per nesting level.
    """
    base_id: str
    iteration: int
    step_id: Optional[str] = None
    branch_path: Tuple[Tuple[int, str], ...] = field(default_factory=tuple)

    @property
    def is_control(self) -> bool:
        """True for loop-control copies (no step component)."""
        return self.step_id is None

    @property
    def leaf_step_id(self) -> Optional[str]:
        """Id of the step this key points at (innermost level)."""
        if self.branch_path:
            return self.branch_path[-1][1]
        return self.step_id

    def child(self, branch_index: int, step_id: str) -> "IterationTaskKey":
        """Key of a step inside branch `branch_index` of this step."""
        if self.step_id is None:
            raise ValueError("Loop-control keys have no branches")
        return replace(self, branch_path=self.branch_path + ((branch_index, step_id),))

    def encode(self) -> str:
        parts = [_escape(self.base_id), f"i{self.iteration}"]
        if self.step_id is not None:
            parts.append(f"s{_escape(self.step_id)}")
            for branch_index, step_id in self.branch_path:
                parts.append(str(branch_index))
                parts.append(_escape(step_id))
        return "_".join(parts)

    def __str__(self) -> str:
        return self.encode()

    @classmethod
    def control(cls, base_id: str, iteration: int) -> "IterationTaskKey":
        return cls(base_id=base_id, iteration=iteration)

    @classmethod
    def parse(cls, task_id: str) -> Optional["IterationTaskKey"]:
        """
        Parse a TaskID produced by encode().

        Returns None when task_id is not a loop-generated id.
        """
        parts = task_id.split("_")
        if len(parts) < 2 or not parts[0]:
            return None

        match = _ITERATION_RE.match(parts[1])
        if match is None:
            return None

        base_id = _unescape(parts[0])
        iteration = int(match.group(1))
        if len(parts) == 2:
            return cls(base_id=base_id, iteration=iteration)

        step_part = parts[2]
        if not step_part.startswith("s") or len(step_part) == 1:
            return None

        rest = parts[3:]
        if len(rest) % 2 != 0:
            return None

        path = []
        for i in range(0, len(rest), 2):
            if not rest[i].isdigit() or not rest[i + 1]:
                return None
            path.append((int(rest[i]), _unescape(rest[i + 1])))

        return cls(
            base_id=base_id,
            iteration=iteration,
            step_id=_unescape(step_part[1:]),
            branch_path=tuple(path),
        )


def iteration_prefix(base_id: str, iteration: int) -> str:
    """Namespace prefix shared by every body task of one iteration."""
    return f"{_escape(base_id)}_i{iteration}_"


def base_of(task_id: str) -> str:
    """Loop base id of a loop-generated TaskID, or task_id itself."""
    key = IterationTaskKey.parse(task_id)
    if key is None:
        return task_id
    return key.base_id


__all__ = ["IterationTaskKey", "iteration_prefix", "base_of", "KEY_VERSION"]
