"""Batch strategies: turn a key set into a key → Outcome mapping.

SingleKeyStrategy fans the key set out into one concurrent fetch per key,
bounded by a FanOut scope; each fetch is captured individually so one key's
exception only fails that key. MultiKeyStrategy issues exactly one call with
the whole key set.

Neither strategy fills in keys the backend did not return; the BatchWindow
turns those into MissingKeyError failures.
"""

from __future__ import annotations

import inspect
from collections.abc import Mapping
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from batchloader.foundation.errors import Outcome, as_outcome
from batchloader.runtime.concurrency import FanOut, run_in_thread
from batchloader.runtime.observability import get_logger

from .resolvers import MultiKeyResolver, SingleKeyResolver, resolver_name

K = TypeVar("K")
V = TypeVar("V")

log = get_logger("batchloader.strategy")


async def _maybe_await(result: Any) -> Any:
    """Await what a plain (non-async) fetch returned when it is itself awaitable."""
    return await result if inspect.isawaitable(result) else result


@runtime_checkable
class BatchStrategy(Protocol[K, V]):
    """Callable that resolves a whole key set for one resolver name."""

    name: str

    async def __call__(self, keys: frozenset[K]) -> Mapping[K, Outcome[V]]: ...


class SingleKeyStrategy(Generic[K, V]):
    """One fetch(key) per key, run concurrently and gathered in full.

    Args:
        resolver: Resolver whose fetch() handles a single key
        max_concurrency: Max fetches in flight at once (None = one per key)
    """

    __slots__ = ("name", "resolver", "max_concurrency", "_is_async")

    def __init__(self, resolver: SingleKeyResolver[K, V], *, max_concurrency: int | None = None) -> None:
        self.name = resolver_name(resolver)
        self.resolver = resolver
        self.max_concurrency = max_concurrency
        self._is_async = inspect.iscoroutinefunction(resolver.fetch)

    async def _fetch(self, key: K) -> V:
        if self._is_async:
            return await self.resolver.fetch(key)  # type: ignore[misc]
        return await _maybe_await(await run_in_thread(self.resolver.fetch, key))

    async def __call__(self, keys: frozenset[K]) -> dict[K, Outcome[V]]:
        if not keys:
            return {}
        async with FanOut(limit=self.max_concurrency) as scope:
            handles = {
                key: scope.spawn(Outcome.catching_async(self._fetch, key), name=f"{self.name}[{key!r}]")
                for key in keys
            }
        return {key: handle.result() for key, handle in handles.items()}

    def __repr__(self) -> str:
        return f"SingleKeyStrategy({self.name}, max_concurrency={self.max_concurrency})"


class MultiKeyStrategy(Generic[K, V]):
    """Exactly one fetch_all(keys) call for the whole key set."""

    __slots__ = ("name", "resolver", "_is_async")

    def __init__(self, resolver: MultiKeyResolver[K, V]) -> None:
        self.name = resolver_name(resolver)
        self.resolver = resolver
        self._is_async = inspect.iscoroutinefunction(resolver.fetch_all)

    async def __call__(self, keys: frozenset[K]) -> dict[K, Outcome[V]]:
        if not keys:
            return {}
        if self._is_async:
            raw = await self.resolver.fetch_all(keys)  # type: ignore[misc]
        else:
            raw = await _maybe_await(await run_in_thread(self.resolver.fetch_all, keys))

        results: dict[K, Outcome[V]] = {}
        unexpected = 0
        for key, value in raw.items():
            if key in keys:
                results[key] = as_outcome(value)
            else:
                unexpected += 1
        if unexpected:
            log.debug("dropped unrequested keys", resolver=self.name, count=unexpected)
        return results

    def __repr__(self) -> str:
        return f"MultiKeyStrategy({self.name})"
