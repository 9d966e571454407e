# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the loop engine.
"""

from core.config.defaults import (
    LoopDefaults,
    TimeoutDefaults,
    DatabaseDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "LoopDefaults",
    "TimeoutDefaults",
    "DatabaseDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
