# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Core - Structured logging with run/loop context
# PURPOSE: Consistent, queryable logging across the loop engine
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Structured Logging

Context-aware logging for the loop orchestration core. Modules log via
the stdlib `logging.getLogger(__name__)`; the formatters installed by
configure_logging() attach whatever context is active.

Context lives in a ContextVar so concurrent handler invocations on one
event loop never see each other's fields.

Usage:
    from core.logging import configure_logging, log_context

    configure_logging("DEBUG")

    with log_context(run_id="run-1", loop_id="1001"):
        logger.info("Advancing loop")
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class LogContext:
    """Contextual fields attached to every record emitted inside log_context()."""
    run_id: Optional[str] = None
    task_id: Optional[str] = None
    loop_id: Optional[str] = None
    step_id: Optional[str] = None
    worker_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, excluding None values."""
        result = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        result.update(self.extra)
        return result


_current: ContextVar[LogContext] = ContextVar("flowcore_log_context", default=LogContext())


def get_current_context() -> LogContext:
    """Get current logging context."""
    return _current.get()


@contextmanager
def log_context(**kwargs):
    """
    Layer context fields over the current context.

    Unknown keyword arguments land in `extra`.

    Example:
        with log_context(run_id="run-1", task_id="1001_i0"):
            logger.info("Generating iteration")
    """
    parent = _current.get()
    known = {k: v for k, v in kwargs.items() if k in LogContext.__dataclass_fields__ and k != "extra"}
    extra = {**parent.extra, **kwargs.get("extra", {})}
    extra.update({k: v for k, v in kwargs.items() if k not in LogContext.__dataclass_fields__})

    token = _current.set(replace(parent, extra=extra, **known))
    try:
        yield _current.get()
    finally:
        _current.reset(token)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for log aggregators."""

    def __init__(self, include_context: bool = True, include_source: bool = True):
        super().__init__()
        self.include_context = include_context
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_context:
            context_dict = get_current_context().to_dict()
            if context_dict:
                log_data["context"] = context_dict

        data = getattr(record, "data", None)
        if data:
            log_data["data"] = data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_source:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """Single-line formatter for development, context inline."""

    _SHORT_NAMES = (
        ("run_id", "run"),
        ("loop_id", "loop"),
        ("task_id", "task"),
        ("step_id", "step"),
    )

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)

        context = get_current_context()
        parts = [
            f"{short}={getattr(context, attr)}"
            for attr, short in self._SHORT_NAMES
            if getattr(context, attr)
        ]
        context_str = f" [{', '.join(parts)}]" if parts else ""

        data = getattr(record, "data", None)
        data_str = f" {data}" if data else ""

        result = f"{timestamp} {level} {record.name}{context_str}: {record.getMessage()}{data_str}"
        if record.exc_info:
            result += f"\n{self.formatException(record.exc_info)}"
        return result


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that copies the active context into record.data."""

    def process(self, msg, kwargs):
        data = dict(kwargs.pop("extra", None) or {})
        data.update(get_current_context().to_dict())
        kwargs["extra"] = {"data": data}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger adapter."""
    return ContextLogger(logging.getLogger(name), {})


def configure_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Use JSON format; LOG_FORMAT=json forces it too
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_output or os.getenv("LOG_FORMAT", "").lower() == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)


__all__ = [
    "LogContext",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
]
