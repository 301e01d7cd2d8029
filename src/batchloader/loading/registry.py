"""Resolver catalog (deployment-time) and resolver registry (request-scoped).

The ResolverCatalog is built once at startup from the deployment's resolvers.
It owns the value type → resolver name table and validates it eagerly.
For every incoming traversal it generates a fresh ResolverRegistry holding one
BatchWindow per resolver; the registry and its windows die with the request.

Example:
    >>> catalog = ResolverCatalog(single=[SchemaListResolver()], multi=[CompanyResolver()])
    >>> catalog.validate([Company, SchemaList])         # fail at startup, not per call
    >>> async with catalog.request(user="alice") as ctx:
    ...     company = await load(ctx, Company, 1)
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Iterator, Mapping
from contextlib import asynccontextmanager
from typing import Any, Callable

from batchloader.foundation.config import LoaderSettings, get_settings
from batchloader.foundation.errors import ResolverNotRegisteredError
from batchloader.runtime.observability import get_logger

from .binding import ResolutionContext
from .resolvers import MultiKeyResolver, SingleKeyResolver, resolver_name
from .strategy import BatchStrategy, MultiKeyStrategy, SingleKeyStrategy
from .window import BatchWindow, WindowStats

log = get_logger("batchloader.registry")


class ResolverRegistry:
    """Request-scoped mapping from resolver name to its BatchWindow.

    Never shared between requests. Lookups and window mutations only happen
    between awaits on the request's event loop, so no locking is needed.
    """

    __slots__ = ("_windows", "_naming", "_closed")

    def __init__(
        self,
        windows: Mapping[str, BatchWindow[Any, Any]],
        naming: Callable[[type[Any]], str] | None = None,
    ) -> None:
        self._windows: dict[str, BatchWindow[Any, Any]] = dict(windows)
        self._naming = naming or (lambda t: f"{t.__name__}Resolver")
        self._closed = False

    def window(self, name: str) -> BatchWindow[Any, Any]:
        """Window registered under name.

        Raises:
            ResolverNotRegisteredError: No resolver under that name
        """
        try:
            return self._windows[name]
        except KeyError:
            raise ResolverNotRegisteredError(name, list(self._windows)) from None

    def name_for(self, value_type: type[Any]) -> str:
        return self._naming(value_type)

    def window_for(self, value_type: type[Any]) -> BatchWindow[Any, Any]:
        return self.window(self.name_for(value_type))

    def names(self) -> list[str]:
        return sorted(self._windows)

    def stats(self) -> dict[str, WindowStats]:
        return {name: w.stats for name, w in sorted(self._windows.items())}

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, reason: str = "request completed") -> None:
        self._closed = True
        for w in self._windows.values():
            w.close(reason)

    async def aclose(self, reason: str = "request completed") -> None:
        self._closed = True
        for w in self._windows.values():
            await w.aclose(reason)

    def __contains__(self, name: object) -> bool:
        return name in self._windows

    def __len__(self) -> int:
        return len(self._windows)

    def __iter__(self) -> Iterator[BatchWindow[Any, Any]]:
        return iter(self._windows.values())

    def __repr__(self) -> str:
        return f"ResolverRegistry({', '.join(self.names())})"


class ResolverCatalog:
    """Deployment-time registration table for resolvers.

    Args:
        single: Resolvers fetching one key per call
        multi: Resolvers fetching a whole key set per call
        settings: Loader settings (defaults to BATCHLOADER_LOADER_* from the environment)
    """

    __slots__ = ("_strategies", "_types", "_settings")

    def __init__(
        self,
        single: Iterable[SingleKeyResolver[Any, Any]] = (),
        multi: Iterable[MultiKeyResolver[Any, Any]] = (),
        *,
        settings: LoaderSettings | None = None,
    ) -> None:
        self._settings = settings or get_settings().loader
        self._strategies: dict[str, BatchStrategy[Any, Any]] = {}
        self._types: dict[type[Any], str] = {}
        for r in single:
            self.register_single(r)
        for r in multi:
            self.register_multi(r)

    @property
    def settings(self) -> LoaderSettings:
        return self._settings

    # ─────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────

    def register_single(self, resolver: SingleKeyResolver[Any, Any], *, name: str | None = None) -> str:
        """Register a single-key resolver. Returns the registry name."""
        strategy = SingleKeyStrategy(resolver, max_concurrency=self._settings.max_concurrency)
        return self._add(name or resolver_name(resolver), strategy, getattr(resolver, "value_type", None))

    def register_multi(self, resolver: MultiKeyResolver[Any, Any], *, name: str | None = None) -> str:
        """Register a multi-key resolver. Returns the registry name."""
        return self._add(name or resolver_name(resolver), MultiKeyStrategy(resolver),
                         getattr(resolver, "value_type", None))

    def _add(self, name: str, strategy: BatchStrategy[Any, Any], value_type: type[Any] | None) -> str:
        if name in self._strategies:
            raise ValueError(f"Resolver '{name}' already registered")
        self._strategies[name] = strategy
        if value_type is not None:
            self.bind_type(value_type, name)
        log.debug("registered resolver", resolver=name, strategy=type(strategy).__name__)
        return name

    def bind_type(self, value_type: type[Any], name: str) -> None:
        """Map a value type to a resolver name explicitly, overriding the naming convention."""
        if (existing := self._types.get(value_type)) is not None and existing != name:
            raise ValueError(f"{value_type.__name__} already bound to '{existing}'")
        self._types[value_type] = name

    def name_for(self, value_type: type[Any]) -> str:
        """Resolver name for a value type: explicit binding, else '<TypeName><suffix>'."""
        return self._types.get(value_type) or f"{value_type.__name__}{self._settings.resolver_suffix}"

    def validate(self, value_types: Iterable[type[Any]]) -> None:
        """Fail fast when a value type used by the schema has no resolver.

        Raises:
            ResolverNotRegisteredError: For the first type without a resolver
        """
        for t in value_types:
            if (name := self.name_for(t)) not in self._strategies:
                raise ResolverNotRegisteredError(name, list(self._strategies))

    def names(self) -> list[str]:
        return sorted(self._strategies)

    def __contains__(self, name: object) -> bool:
        return name in self._strategies

    def __len__(self) -> int:
        return len(self._strategies)

    # ─────────────────────────────────────────────────────────────────
    # Request scope
    # ─────────────────────────────────────────────────────────────────

    def generate(self) -> ResolverRegistry:
        """Build a fresh registry with one new window per resolver."""
        cache = self._settings.cache_enabled
        windows = {name: BatchWindow(name, s, cache=cache) for name, s in self._strategies.items()}
        return ResolverRegistry(windows, self.name_for)

    @asynccontextmanager
    async def request(self, **context: Any) -> AsyncIterator[ResolutionContext]:
        """Scope one traversal: yields a ResolutionContext bound to a fresh registry.

        On exit every window is closed, so no caller is left waiting on a key.
        Keyword arguments are passed to ResolutionContext (user, path, extras).
        """
        registry = self.generate()
        try:
            yield ResolutionContext(registry=registry, **context)
        finally:
            await registry.aclose()
