"""Concurrency primitives used by the batch strategies.

- FanOut: bounded, structured fan-out that gathers every child
- TaskHandle/TaskState: access to a spawned child's state and result
- run_in_thread: offload blocking resolver calls to a shared thread pool
"""

from __future__ import annotations

from .pool import DEFAULT_THREAD_WORKERS, run_in_thread, shutdown_default_pool
from .task import FanOut, TaskHandle, TaskState

__all__ = [
    "FanOut",
    "TaskHandle",
    "TaskState",
    "run_in_thread",
    "shutdown_default_pool",
    "DEFAULT_THREAD_WORKERS",
]
