"""Batch window: the unit of coalescing for one resolver name within one request.

Keys requested before control returns to the event loop are delivered to the
strategy together, exactly once. Every requested key is memoised as a future
of its Outcome, so repeated requests for the same key within the request share
the first request's result without another backend call.

Dispatch is triggered lazily by the first request of an open batch
(loop.call_soon), or explicitly through dispatch(). Keys requested after a
batch was dispatched open a new batch under the same window; keys already
memoised are never dispatched again.

Lifecycle per key: REQUESTED → PENDING → DISPATCHED → RESOLVED.
Lifecycle per batch: OPEN → DISPATCHED → CLOSED.

Every future receives exactly one Outcome:
    - keys the strategy omitted → Failure(MissingKeyError)
    - strategy raised → Failure(cause) for every key of the batch
    - cancelled or window closed → Failure(LoadCancelledError)
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Generic, TypeVar

from batchloader.foundation.errors import (
    Failure,
    LoadCancelledError,
    MissingKeyError,
    Outcome,
    Success,
)
from batchloader.runtime.observability import get_logger

from .strategy import BatchStrategy

K = TypeVar("K")
V = TypeVar("V")


class DispatchState(StrEnum):
    OPEN = "open"
    DISPATCHED = "dispatched"
    CLOSED = "closed"


class KeyState(StrEnum):
    REQUESTED = "requested"
    PENDING = "pending"
    DISPATCHED = "dispatched"
    RESOLVED = "resolved"


@dataclass(slots=True)
class WindowStats:
    """Counters for one window over the lifetime of its request."""
    load_count: int = 0
    cache_hit_count: int = 0
    batch_count: int = 0
    dispatched_key_count: int = 0

    @property
    def cache_hit_ratio(self) -> float:
        return self.cache_hit_count / self.load_count if self.load_count else 0.0


@dataclass(slots=True)
class _Batch(Generic[K, V]):
    futures: dict[K, asyncio.Future[Outcome[V]]] = field(default_factory=dict)
    state: DispatchState = DispatchState.OPEN
    task: asyncio.Task[dict[K, Outcome[V]]] | None = None


class BatchWindow(Generic[K, V]):
    """Coalesces key requests for one resolver into batched strategy calls.

    Args:
        name: Resolver name this window serves
        strategy: Strategy invoked with each batch's frozen key set
        cache: Keep resolved outcomes for the rest of the request. When False,
            a key is only shared while its batch is in flight.

    Example:
        >>> window = BatchWindow("CompanyResolver", MultiKeyStrategy(CompanyResolver()))
        >>> a, b = window.request(1), window.request(2)   # same batch
        >>> (await a).get(), (await b).get()
    """

    __slots__ = ("name", "_strategy", "_cache", "_memo", "_states", "_open", "_inflight", "_closed", "stats", "_log")

    def __init__(self, name: str, strategy: BatchStrategy[K, V], *, cache: bool = True) -> None:
        self.name = name
        self._strategy = strategy
        self._cache = cache
        self._memo: dict[K, asyncio.Future[Outcome[V]]] = {}
        self._states: dict[K, KeyState] = {}
        self._open: _Batch[K, V] | None = None
        self._inflight: set[asyncio.Task[dict[K, Outcome[V]]]] = set()
        self._closed = False
        self.stats = WindowStats()
        self._log = get_logger("batchloader.window", resolver=name)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_keys(self) -> frozenset[K]:
        """Keys waiting in the open batch."""
        return frozenset(self._open.futures) if self._open else frozenset()

    def state_of(self, key: K) -> KeyState | None:
        return self._states.get(key)

    # ─────────────────────────────────────────────────────────────────
    # Requesting
    # ─────────────────────────────────────────────────────────────────

    def request(self, key: K) -> asyncio.Future[Outcome[V]]:
        """Register interest in key and return a future of its Outcome.

        A memoised key returns its existing future (resolved or in flight).
        Callers should await it through asyncio.shield() so that cancelling
        one caller never cancels the shared future.
        """
        self.stats.load_count += 1
        if (fut := self._memo.get(key)) is not None:
            self.stats.cache_hit_count += 1
            return fut

        loop = asyncio.get_running_loop()
        fut = loop.create_future()
        self._states[key] = KeyState.REQUESTED
        if self._closed:
            self._settle(key, fut, Failure(LoadCancelledError(self.name, key, "window closed")))
            return fut

        self._memo[key] = fut
        batch = self._open
        if batch is None:
            batch = self._open = _Batch()
            loop.call_soon(self._launch, batch)
        batch.futures[key] = fut
        self._states[key] = KeyState.PENDING
        return fut

    async def load(self, key: K) -> Outcome[V]:
        """Request key and wait for its Outcome."""
        return await asyncio.shield(self.request(key))

    async def load_many(self, keys: Iterable[K]) -> list[Outcome[V]]:
        """Request every key (one batch) and wait for all Outcomes, in input order."""
        futures = [self.request(k) for k in keys]
        return list(await asyncio.shield(asyncio.gather(*futures))) if futures else []

    def prime(self, key: K, value: V) -> bool:
        """Seed the memo with a Success for key. Returns False if key is already known."""
        if key in self._memo:
            return False
        fut: asyncio.Future[Outcome[V]] = asyncio.get_running_loop().create_future()
        self._memo[key] = fut
        self._settle(key, fut, Success(value), keep=True)
        return True

    def clear(self, key: K) -> bool:
        """Forget a resolved key so the next request refetches it. In-flight keys are kept."""
        fut = self._memo.get(key)
        if fut is None or not fut.done():
            return False
        del self._memo[key]
        self._states.pop(key, None)
        return True

    def clear_all(self) -> int:
        return sum(self.clear(k) for k in list(self._memo))

    # ─────────────────────────────────────────────────────────────────
    # Dispatching
    # ─────────────────────────────────────────────────────────────────

    async def dispatch(self) -> dict[K, Outcome[V]]:
        """Dispatch the open batch now and wait for its outcomes.

        Returns an empty mapping, without calling the strategy, when no keys
        are waiting.
        """
        batch = self._open
        if batch is None or not batch.futures:
            return {}
        task = self._start(batch)
        return await asyncio.shield(task)

    def _launch(self, batch: _Batch[K, V]) -> None:
        """Scheduled by the first request of a batch."""
        if batch.state is DispatchState.OPEN and not self._closed:
            self._start(batch)

    def _start(self, batch: _Batch[K, V]) -> asyncio.Task[dict[K, Outcome[V]]]:
        if batch.task is None:
            batch.state = DispatchState.DISPATCHED
            if self._open is batch:
                self._open = None
            batch.task = asyncio.get_running_loop().create_task(self._run(batch), name=f"dispatch:{self.name}")
            self._inflight.add(batch.task)
            batch.task.add_done_callback(self._inflight.discard)
        return batch.task

    async def _run(self, batch: _Batch[K, V]) -> dict[K, Outcome[V]]:
        keys = frozenset(batch.futures)
        for key in keys:
            self._states[key] = KeyState.DISPATCHED
        self.stats.batch_count += 1
        self.stats.dispatched_key_count += len(keys)
        self._log.debug("dispatching batch", size=len(keys), batch=self.stats.batch_count)

        try:
            results = await self._strategy(keys)
        except asyncio.CancelledError:
            self._fail_all(batch, "dispatch cancelled")
            batch.state = DispatchState.CLOSED
            raise
        except Exception as e:
            self._log.warning("batch failed", size=len(keys), error=repr(e))
            results = {key: Failure(e) for key in keys}

        outcomes: dict[K, Outcome[V]] = {}
        for key, fut in batch.futures.items():
            outcome = results.get(key)
            if outcome is None:
                outcome = Failure(MissingKeyError(self.name, key))
            self._settle(key, fut, outcome)
            outcomes[key] = outcome
        batch.state = DispatchState.CLOSED
        return outcomes

    # ─────────────────────────────────────────────────────────────────
    # Resolution & Shutdown
    # ─────────────────────────────────────────────────────────────────

    def _settle(self, key: K, fut: asyncio.Future[Outcome[V]], outcome: Outcome[V], *, keep: bool = False) -> None:
        if fut.done():
            return
        fut.set_result(outcome)
        self._states[key] = KeyState.RESOLVED
        if not (self._cache or keep) and self._memo.get(key) is fut:
            del self._memo[key]

    def _fail_all(self, batch: _Batch[K, V], reason: str) -> None:
        for key, fut in batch.futures.items():
            self._settle(key, fut, Failure(LoadCancelledError(self.name, key, reason)))

    def close(self, reason: str = "request completed") -> None:
        """Close the window: cancel in-flight batches and fail every unresolved key.

        Later requests resolve immediately to a cancellation failure.
        """
        if self._closed:
            return
        self._closed = True
        if self._open is not None:
            self._open.state = DispatchState.CLOSED
            self._fail_all(self._open, reason)
            self._open = None
        for task in list(self._inflight):
            task.cancel(reason)
        unresolved = [(k, f) for k, f in self._memo.items() if not f.done()]
        for key, fut in unresolved:
            self._settle(key, fut, Failure(LoadCancelledError(self.name, key, reason)))
        if unresolved:
            self._log.debug("closed with unresolved keys", count=len(unresolved), reason=reason)

    async def aclose(self, reason: str = "request completed") -> None:
        """Close and wait for cancelled dispatch tasks to unwind."""
        tasks = list(self._inflight)
        self.close(reason)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def __repr__(self) -> str:
        return f"BatchWindow({self.name!r}, memo={len(self._memo)}, pending={len(self.pending_keys)})"
