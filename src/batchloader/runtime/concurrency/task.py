"""Bounded structured fan-out.

FanOut runs many coroutines concurrently as one unit:
    - Bounded: at most `limit` children run at once (None = unbounded)
    - Structured: children never outlive the scope
    - Cancelled as a unit: cancelling the host or calling cancel() cancels every child
    - Full gather: exiting the scope waits for every child, success or failure

Unlike a fail-fast task group, one child's exception does not cancel its
siblings; it is collected and re-raised when the scope exits.

Example:
    >>> async with FanOut(limit=8) as scope:
    ...     handles = [scope.spawn(fetch(k)) for k in keys]
    >>> values = [h.result() for h in handles]
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from types import TracebackType

T = TypeVar("T")


class TaskState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class TaskHandle(Generic[T]):
    """Handle to a spawned child without exposing the asyncio.Task."""

    name: str | None = None
    _task: asyncio.Task[T] | None = field(default=None, repr=False)

    @property
    def state(self) -> TaskState:
        if self._task is None:
            return TaskState.PENDING
        if self._task.cancelled():
            return TaskState.CANCELLED
        if self._task.done():
            return TaskState.FAILED if self._task.exception() else TaskState.COMPLETED
        return TaskState.RUNNING

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def result(self) -> T:
        """Child result. Raises the child's exception, or RuntimeError if not finished."""
        if self._task is None or not self._task.done():
            raise RuntimeError(f"Task {self.name or ''} not complete")
        return self._task.result()

    def cancel(self, msg: str | None = None) -> bool:
        return self._task.cancel(msg) if self._task else False


class FanOut:
    """Structured scope for a bounded concurrent fan-out."""

    __slots__ = ("_limit", "_sem", "_tasks", "_started", "_exiting")

    def __init__(self, limit: int | None = None) -> None:
        if limit is not None and limit < 1:
            raise ValueError("limit must be >= 1")
        self._limit = limit
        self._sem = asyncio.Semaphore(limit) if limit else None
        self._tasks: set[asyncio.Task[object]] = set()
        self._started = False
        self._exiting = False

    @property
    def limit(self) -> int | None:
        return self._limit

    def spawn(self, coro: Coroutine[object, object, T], *, name: str | None = None) -> TaskHandle[T]:
        """Start a child task, gated by the scope's concurrency limit.

        Raises:
            RuntimeError: If called outside the context manager or while exiting
        """
        if not self._started:
            coro.close()
            raise RuntimeError("FanOut must be used as an async context manager")
        if self._exiting:
            coro.close()
            raise RuntimeError("Cannot spawn tasks while exiting FanOut")

        task = asyncio.create_task(self._gated(coro), name=name)
        handle: TaskHandle[T] = TaskHandle(name=name, _task=task)
        self._tasks.add(task)  # type: ignore[arg-type]
        task.add_done_callback(self._tasks.discard)
        return handle

    async def _gated(self, coro: Coroutine[object, object, T]) -> T:
        if self._sem is None:
            return await coro
        async with self._sem:
            return await coro

    def cancel(self) -> None:
        """Cancel every child still running."""
        for task in self._tasks:
            task.cancel()

    async def __aenter__(self) -> FanOut:
        self._started = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        self._exiting = True
        if exc_val is not None:
            self.cancel()

        exceptions: list[Exception] = []
        while self._tasks:
            try:
                done, _ = await asyncio.wait(self._tasks, return_when=asyncio.ALL_COMPLETED)
            except asyncio.CancelledError:
                # Host cancelled while waiting: cancel children, let them unwind, re-raise
                self.cancel()
                await asyncio.gather(*self._tasks, return_exceptions=True)
                raise
            self._tasks.difference_update(done)
            for task in done:
                if not task.cancelled() and isinstance(exc := task.exception(), Exception):
                    exceptions.append(exc)

        if exc_val is None and exceptions:
            if len(exceptions) == 1:
                raise exceptions[0]
            raise ExceptionGroup("FanOut errors", exceptions)
        return False
