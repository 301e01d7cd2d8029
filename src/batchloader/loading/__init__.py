"""Batched key resolution.

Coalesces the individual key lookups of one traversal into batched resolver
calls, with an independent Outcome per key.

Usage:
    from batchloader.loading import MultiKeyResolver, ResolverCatalog, load, load_tolerant

    class CompanyResolver(MultiKeyResolver[int, Company]):
        async def fetch_all(self, keys):
            return {k: Company(id=k, name=...) for k in keys}

    catalog = ResolverCatalog(multi=[CompanyResolver()])
    catalog.validate([Company])

    async with catalog.request(user="alice") as ctx:
        company = await load(ctx, Company, 1)
        partial = await load_tolerant(ctx.child("employees", 0, "company"), Company, 2)
"""

from .binding import (
    PartialResult,
    ResolutionContext,
    TypedLoader,
    load,
    load_many,
    load_outcome,
    load_tolerant,
)
from .registry import ResolverCatalog, ResolverRegistry
from .resolvers import MultiKeyResolver, Resolver, SingleKeyResolver, resolver_name
from .strategy import BatchStrategy, MultiKeyStrategy, SingleKeyStrategy
from .window import BatchWindow, DispatchState, KeyState, WindowStats

__all__ = [
    # Resolvers
    "SingleKeyResolver", "MultiKeyResolver", "Resolver", "resolver_name",
    # Strategies
    "BatchStrategy", "SingleKeyStrategy", "MultiKeyStrategy",
    # Window
    "BatchWindow", "DispatchState", "KeyState", "WindowStats",
    # Registry
    "ResolverCatalog", "ResolverRegistry",
    # Binding
    "ResolutionContext", "PartialResult", "TypedLoader",
    "load", "load_tolerant", "load_many", "load_outcome",
]
