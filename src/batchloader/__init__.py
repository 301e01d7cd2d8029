"""batchloader - request-scoped batched key resolution for field-resolution graphs.

Coalesces the individual lookups issued while one traversal walks the graph
into fewer batched backend calls, while every requested key still gets its
own success-or-failure Outcome.

Quick Start:
    >>> from batchloader import MultiKeyResolver, ResolverCatalog, Success, load
    >>>
    >>> class CompanyResolver(MultiKeyResolver[int, Company]):
    ...     async def fetch_all(self, keys):
    ...         rows = await backend.companies(sorted(keys))
    ...         return {row.id: Success(row) for row in rows}
    >>>
    >>> catalog = ResolverCatalog(multi=[CompanyResolver()])
    >>> catalog.validate([Company])
    >>>
    >>> async with catalog.request(user="alice") as ctx:
    ...     a, b = await asyncio.gather(load(ctx, Company, 1), load(ctx, Company, 2))  # one backend call

Tolerant loads turn a failed key into a null value plus a LoadError:
    >>> result = await load_tolerant(ctx.child("employees", 0, "company"), Company, 3)
    >>> result.data, result.errors
    (None, (LoadError(message='...', code=<ErrorCode.MISSING_KEY: 'MISSING_KEY'>, ...),))
"""

from __future__ import annotations

__version__ = "0.1.0"

from .foundation.config import BatchloaderSettings, get_settings
from .foundation.errors import (
    ErrorCode,
    Failure,
    LoadCancelledError,
    LoadError,
    LoaderException,
    MissingKeyError,
    Outcome,
    ResolverNotRegisteredError,
    Success,
    collect_outcomes,
)
from .loading import (
    BatchWindow,
    MultiKeyResolver,
    MultiKeyStrategy,
    PartialResult,
    ResolutionContext,
    ResolverCatalog,
    ResolverRegistry,
    SingleKeyResolver,
    SingleKeyStrategy,
    load,
    load_many,
    load_outcome,
    load_tolerant,
)
from .runtime.observability import configure_logging, get_logger

__all__ = [
    "__version__",
    # Outcome & errors
    "Outcome", "Success", "Failure", "collect_outcomes",
    "ErrorCode", "LoadError", "LoaderException", "MissingKeyError",
    "LoadCancelledError", "ResolverNotRegisteredError",
    # Resolvers & strategies
    "SingleKeyResolver", "MultiKeyResolver", "SingleKeyStrategy", "MultiKeyStrategy",
    # Windows & registry
    "BatchWindow", "ResolverCatalog", "ResolverRegistry",
    # Binding
    "ResolutionContext", "PartialResult", "load", "load_tolerant", "load_many", "load_outcome",
    # Config & logging
    "BatchloaderSettings", "get_settings", "configure_logging", "get_logger",
]
