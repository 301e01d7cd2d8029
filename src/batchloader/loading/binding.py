"""Load binding: request a value by key from inside a field-resolution step.

The binding derives the resolver name from the expected value type, requests
the key from that resolver's window in the current request's registry, and
awaits exactly that key's slot of the shared batch result.

    strict:    value = await load(ctx, Company, 1)            # Failure re-raises its cause
    tolerant:  res = await load_tolerant(ctx, Company, 1)     # Failure → PartialResult(None, [LoadError])

A missing resolver raises ResolverNotRegisteredError in both modes.

The ResolutionContext is passed down the resolution call chain explicitly;
there is no global or context-variable registry.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from batchloader.foundation.errors import LoadError, Outcome, SourceLocation

if TYPE_CHECKING:
    from .registry import ResolverRegistry

K = TypeVar("K")
V = TypeVar("V")


@dataclass(frozen=True, slots=True)
class ResolutionContext:
    """Per-request state handed to every field-resolution step.

    Attributes:
        registry: The request's resolver registry
        user: Caller identity, if authenticated
        path: Response path of the field being resolved
        locations: Source locations of the field in the query document
        extras: Free-form values from the query layer (headers, tokens, ...)
    """

    registry: ResolverRegistry
    user: str | None = None
    path: tuple[str | int, ...] = ()
    locations: tuple[SourceLocation, ...] = ()
    extras: dict[str, Any] = field(default_factory=dict)

    def child(self, *segments: str | int, location: tuple[int, int] | None = None) -> ResolutionContext:
        """Context for a nested field: path extended by segments, location replaced if given."""
        locations = (SourceLocation(line=location[0], column=location[1]),) if location else self.locations
        return replace(self, path=(*self.path, *segments), locations=locations)

    def loader(self, value_type: type[V]) -> TypedLoader[Any, V]:
        """Bind the load surface to one value type."""
        return TypedLoader(self, value_type)


@dataclass(frozen=True, slots=True)
class PartialResult(Generic[V]):
    """Value-or-null paired with the errors that caused a null."""

    data: V | None
    errors: tuple[LoadError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


async def load_outcome(ctx: ResolutionContext, value_type: type[V], key: Any) -> Outcome[V]:
    """Request key from the resolver for value_type and await its Outcome.

    Raises:
        ResolverNotRegisteredError: No resolver for value_type in this request
    """
    window = ctx.registry.window_for(value_type)
    return await asyncio.shield(window.request(key))


async def load(ctx: ResolutionContext, value_type: type[V], key: Any) -> V:
    """Strict load: the value, or the Failure's cause raised."""
    return (await load_outcome(ctx, value_type, key)).get()


async def load_tolerant(ctx: ResolutionContext, value_type: type[V], key: Any) -> PartialResult[V]:
    """Tolerant load: a Failure becomes a null value with an attached LoadError."""
    window = ctx.registry.window_for(value_type)
    outcome = await asyncio.shield(window.request(key))
    if outcome.is_success():
        return PartialResult(outcome.get())
    error = LoadError.from_exception(
        outcome.cause,  # type: ignore[arg-type]
        path=ctx.path,
        locations=ctx.locations,
        resolver=window.name,
        key=key,
    )
    return PartialResult(None, (error,))


async def load_many(ctx: ResolutionContext, value_type: type[V], keys: Iterable[Any]) -> list[V]:
    """Strict load of several keys in one batch, in input order.

    Raises the cause of the first failed key (in input order).
    """
    window = ctx.registry.window_for(value_type)
    outcomes = await window.load_many(keys)
    return [o.get() for o in outcomes]


@dataclass(frozen=True, slots=True)
class TypedLoader(Generic[K, V]):
    """Load surface bound to a context and a value type.

    Example:
        >>> companies = ctx.loader(Company)
        >>> await companies.load(1)
        >>> await companies.load_tolerant(2)
    """

    ctx: ResolutionContext
    value_type: type[V]

    async def load(self, key: K) -> V:
        return await load(self.ctx, self.value_type, key)

    async def load_tolerant(self, key: K) -> PartialResult[V]:
        return await load_tolerant(self.ctx, self.value_type, key)

    async def load_many(self, keys: Iterable[K]) -> list[V]:
        return await load_many(self.ctx, self.value_type, keys)

    async def load_outcome(self, key: K) -> Outcome[V]:
        return await load_outcome(self.ctx, self.value_type, key)
