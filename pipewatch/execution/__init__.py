"""Execution records: persistence and the per-execution lock."""

from pipewatch.execution.lock import ExecutionLock
from pipewatch.execution.store import Execution, ExecutionStore

__all__ = ["Execution", "ExecutionLock", "ExecutionStore"]
