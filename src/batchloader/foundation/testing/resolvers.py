"""Recording resolvers for testing code built on batchloader.

Each backend call is recorded as an Invocation so tests can assert how many
calls were made and with which keys:

    >>> companies = RecordingMultiResolver({1: "Acme", 2: "Globex"}, omit={2})
    >>> catalog = ResolverCatalog(multi=[companies])
    >>> ...
    >>> companies.assert_called_once()
    >>> companies.last_call.keys
    frozenset({1, 2})
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar

from batchloader.foundation.errors import Failure, Outcome, Success
from batchloader.loading.resolvers import MultiKeyResolver, SingleKeyResolver

K = TypeVar("K")
V = TypeVar("V")


@dataclass(slots=True)
class Invocation:
    """Record of one backend call."""
    keys: frozenset[Any]
    started_at: float
    finished_at: float | None = None


class _Recorder:
    """Invocation bookkeeping and assertions shared by both recording resolvers."""

    invocations: list[Invocation]

    @property
    def call_count(self) -> int:
        return len(self.invocations)

    @property
    def called(self) -> bool:
        return self.call_count > 0

    @property
    def last_call(self) -> Invocation | None:
        return self.invocations[-1] if self.invocations else None

    @property
    def requested_keys(self) -> list[Any]:
        """Every key passed to the backend, in call order (repeats included)."""
        return [k for inv in self.invocations for k in sorted(inv.keys, key=repr)]

    def assert_called(self) -> None:
        if not self.called:
            raise AssertionError("Expected resolver to be called")

    def assert_not_called(self) -> None:
        if self.called:
            raise AssertionError(f"Resolver called {self.call_count} times")

    def assert_called_once(self) -> None:
        if self.call_count != 1:
            raise AssertionError(f"Expected one call, got {self.call_count}")

    def _begin(self, keys: frozenset[Any]) -> Invocation:
        inv = Invocation(keys=keys, started_at=asyncio.get_running_loop().time())
        self.invocations.append(inv)
        return inv

    def _finish(self, inv: Invocation) -> None:
        inv.finished_at = asyncio.get_running_loop().time()


@dataclass
class RecordingResolver(_Recorder, SingleKeyResolver[K, V], Generic[K, V]):
    """Single-key resolver answering from a mapping or a function.

    Args:
        values: key → value mapping, or a callable computing the value
        failures: key → exception raised when that key is fetched
        delay: seconds each fetch sleeps before answering
    """

    name: ClassVar[str] = "RecordingResolver"

    values: Mapping[K, V] | Callable[[K], V] = field(default_factory=dict)
    failures: Mapping[K, Exception] = field(default_factory=dict)
    delay: float = 0.0
    invocations: list[Invocation] = field(default_factory=list)
    in_flight: int = 0
    max_in_flight: int = 0

    async def fetch(self, key: K) -> V:
        inv = self._begin(frozenset({key}))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if key in self.failures:
                raise self.failures[key]
            if callable(self.values):
                return self.values(key)
            if key not in self.values:
                raise KeyError(f"{key!r} not found")
            return self.values[key]
        finally:
            self.in_flight -= 1
            self._finish(inv)


@dataclass
class RecordingMultiResolver(_Recorder, MultiKeyResolver[K, V], Generic[K, V]):
    """Multi-key resolver answering from a mapping.

    Args:
        values: key → value mapping
        failures: key → exception returned as that key's Failure
        omit: keys left out of the response
        batch_error: exception raised for the whole batch
        delay: seconds each call sleeps before answering
    """

    name: ClassVar[str] = "RecordingMultiResolver"

    values: Mapping[K, V] = field(default_factory=dict)
    failures: Mapping[K, Exception] = field(default_factory=dict)
    omit: frozenset[K] | set[K] = field(default_factory=frozenset)
    batch_error: Exception | None = None
    delay: float = 0.0
    invocations: list[Invocation] = field(default_factory=list)

    async def fetch_all(self, keys: frozenset[K]) -> dict[K, Outcome[V]]:
        inv = self._begin(keys)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.batch_error is not None:
                raise self.batch_error
            out: dict[K, Outcome[V]] = {}
            for key in keys:
                if key in self.omit:
                    continue
                if key in self.failures:
                    out[key] = Failure(self.failures[key])
                elif key in self.values:
                    out[key] = Success(self.values[key])
            return out
        finally:
            self._finish(inv)
