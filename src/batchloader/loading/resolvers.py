"""Resolver interfaces implemented by the domain layer.

Two shapes are supported:

    SingleKeyResolver.fetch(key) -> value             (may raise; sync or async)
    MultiKeyResolver.fetch_all(keys) -> {key: value}  (values may be Outcomes)

Each resolver exposes a stable `name`, used as its registry key. It defaults
to the class name, so `class CompanyResolver(MultiKeyResolver[int, Company])`
registers as "CompanyResolver". Setting `value_type` binds the resolver to the
type that load bindings ask for, independent of the naming convention.

Example:
    >>> class CompanyResolver(MultiKeyResolver[int, Company]):
    ...     async def fetch_all(self, keys):
    ...         rows = await api.companies(ids=sorted(keys))
    ...         return {row.id: row for row in rows}
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Mapping
from typing import Any, ClassVar, Generic, TypeVar

from batchloader.foundation.errors import Outcome

K = TypeVar("K")
V = TypeVar("V")


class _NamedResolver:
    name: ClassVar[str]
    value_type: ClassVar[type[Any] | None] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "name" not in cls.__dict__:
            cls.name = cls.__name__


class SingleKeyResolver(_NamedResolver, ABC, Generic[K, V]):
    """Fetches one key at a time. The framework fans a batch out into concurrent calls."""

    @abstractmethod
    def fetch(self, key: K) -> Awaitable[V] | V:
        """Fetch the value for one key. Raise to fail only this key."""


class MultiKeyResolver(_NamedResolver, ABC, Generic[K, V]):
    """Fetches a whole key set in one backend call."""

    @abstractmethod
    def fetch_all(self, keys: frozenset[K]) -> Awaitable[Mapping[K, V | Outcome[V]]] | Mapping[K, V | Outcome[V]]:
        """Fetch every key. Omitted keys fail with MissingKeyError; raising fails the whole batch."""


Resolver = SingleKeyResolver[Any, Any] | MultiKeyResolver[Any, Any]


def resolver_name(resolver: object) -> str:
    """Registry name for a resolver instance."""
    return getattr(resolver, "name", None) or type(resolver).__name__
