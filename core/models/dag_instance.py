# ============================================================================
# DAG INSTANCE & SHARE DATA
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Core model - One running execution of a DAG
# PURPOSE: Run identity plus the per-run ShareData blackboard
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: DagInstance, ShareData, ShareKey
# DEPENDENCIES: pydantic, threading
# ============================================================================
"""
DAG Instance and ShareData

ShareData is a key-value blackboard scoped to one run. Tasks publish
results into it and templated parameters read from it.

Keys are built with ShareKey so every writer uses the same namespace:

    ShareKey.task_values("1001_i0_s2")            -> "__1001_i0_s2"
    ShareKey.loop_values("1001")                  -> "__1001"
    ShareKey.loop_field("1001", "index")          -> "__loop_1001_index"

Parallel writers use disjoint (per-task) keys; the lock only makes
individual get/set calls atomic.
"""

import copy
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class ShareKey:
    """Typed composite ShareData key."""
    namespace: str
    name: str
    field: Optional[str] = None

    TASK = "task"
    LOOP = "loop"

    @classmethod
    def task_values(cls, task_id: str) -> "ShareKey":
        """Values published for a single task (results, per-iteration loop values)."""
        return cls(cls.TASK, task_id)

    @classmethod
    def loop_values(cls, base_id: str) -> "ShareKey":
        """Loop-wide values (current index/value, then aggregated outputs)."""
        return cls(cls.TASK, base_id)

    @classmethod
    def iteration_values(cls, control_task_id: str) -> "ShareKey":
        """Index/value published for one loop-control copy."""
        return cls.task_values(control_task_id)

    @classmethod
    def loop_field(cls, loop_id: str, field_name: str) -> "ShareKey":
        """A single loop bookkeeping field (index, value, dependent_tasks, ...)."""
        return cls(cls.LOOP, loop_id, field_name)

    @classmethod
    def loop_index(cls, base_id: str) -> "ShareKey":
        return cls.loop_field(base_id, "index")

    @classmethod
    def loop_value(cls, base_id: str) -> "ShareKey":
        return cls.loop_field(base_id, "value")

    def __str__(self) -> str:
        if self.namespace == self.LOOP:
            return f"__loop_{self.name}_{self.field}"
        return f"__{self.name}"


KeyLike = Union[ShareKey, str]


class ShareData:
    """Thread-safe per-run key-value store."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: KeyLike, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(str(key), default)

    def set(self, key: KeyLike, value: Any) -> None:
        with self._lock:
            self._data[str(key)] = value

    def contains(self, key: KeyLike) -> bool:
        with self._lock:
            return str(key) in self._data

    def __contains__(self, key: KeyLike) -> bool:
        return self.contains(key)

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the current contents."""
        with self._lock:
            return copy.deepcopy(self._data)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class DagInstance(BaseModel):
    """One running execution of a DAG definition."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(..., max_length=64)
    dag_id: Optional[str] = Field(default=None, max_length=64)
    share_data: ShareData = Field(default_factory=ShareData)


__all__ = ["DagInstance", "ShareData", "ShareKey"]
