# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for loops, timeouts and the database
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Configuration Defaults

Immutable dataclasses with environment overrides. Read once through
get_defaults(); tests call reset_defaults() after patching the
environment.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from core.contracts import LoopMode, StepOperator


@dataclass(frozen=True)
class LoopDefaults:
    """
    Defaults for loop-control tasks.

    max_iterations is a safety ceiling; larger limits are clamped.
    """
    default_mode: str = LoopMode.LIMIT.value
    max_iterations: int = 10000
    control_task_prefix_separator: str = "_i"

    def clamp(self, limit: int) -> int:
        """Limit bounded by max_iterations."""
        return min(limit, self.max_iterations)

    @classmethod
    def from_env(cls) -> "LoopDefaults":
        """Create from environment variables."""
        return cls(
            default_mode=os.getenv("LOOP_DEFAULT_MODE", LoopMode.LIMIT.value),
            max_iterations=int(os.getenv("LOOP_MAX_ITERATIONS", 10000)),
        )


@dataclass(frozen=True)
class TimeoutDefaults:
    """Per-operator task timeouts (seconds)."""
    default_seconds: int = 3600  # 1 hour
    branch_seconds: int = 600  # 10 min
    loop_seconds: int = 86400  # 24 hours

    def get_timeout(self, operator: Optional[str]) -> int:
        """Timeout for a task created from a step with this operator."""
        if operator == StepOperator.BRANCH:
            return self.branch_seconds
        if operator == StepOperator.LOOP:
            return self.loop_seconds
        return self.default_seconds

    @classmethod
    def from_env(cls) -> "TimeoutDefaults":
        """Create from environment variables."""
        return cls(
            default_seconds=int(os.getenv("TASK_TIMEOUT_SEC", 3600)),
            branch_seconds=int(os.getenv("BRANCH_TIMEOUT_SEC", 600)),
            loop_seconds=int(os.getenv("LOOP_TIMEOUT_SEC", 86400)),
        )


@dataclass(frozen=True)
class DatabaseDefaults:
    """Connection pool and schema settings."""
    schema: str = "flowcore"
    min_pool_size: int = 2
    max_pool_size: int = 10

    @classmethod
    def from_env(cls) -> "DatabaseDefaults":
        """Create from environment variables."""
        return cls(
            schema=os.getenv("DATABASE_SCHEMA", "flowcore"),
            min_pool_size=int(os.getenv("DB_POOL_MIN", 2)),
            max_pool_size=int(os.getenv("DB_POOL_MAX", 10)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    loop: LoopDefaults = field(default_factory=LoopDefaults)
    timeouts: TimeoutDefaults = field(default_factory=TimeoutDefaults)
    database: DatabaseDefaults = field(default_factory=DatabaseDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            loop=LoopDefaults.from_env(),
            timeouts=TimeoutDefaults.from_env(),
            database=DatabaseDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "LoopDefaults",
    "TimeoutDefaults",
    "DatabaseDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
