"""Per-key Outcome type: Success(value) or Failure(cause).

A tagged value that keeps one key's failure from contaminating its siblings.
Unlike a general Result/Either, the failure side is always an exception and
`get()` re-raises that exception unchanged, so a strict caller sees the
backend's own error rather than a wrapper.

- Accessors: is_success, is_failure, get, value, cause
- Functor/Monad: map, flat_map, recover
- Capture: catching, catching_async
"""

from __future__ import annotations

from collections.abc import Awaitable, Mapping
from typing import TYPE_CHECKING, Callable, Generic, NoReturn, ParamSpec, TypeVar

if TYPE_CHECKING:
    from collections.abc import Iterator

K = TypeVar("K")
V = TypeVar("V")
U = TypeVar("U")
P = ParamSpec("P")

# Tag values for the two variants
_SUCCESS = True
_FAILURE = False


class Outcome(Generic[V]):
    """Immutable success-or-failure result for a single requested key.

    Examples:
        >>> Success(41).map(lambda x: x + 1).get()
        42
        >>> Failure(KeyError("k")).is_failure()
        True
        >>> Failure(ValueError("bad")).get_or(0)
        0
    """

    __slots__ = ("_payload", "_ok", "_tb")
    __match_args__ = ("_payload",)

    def __init__(self, payload: V | BaseException, ok: bool) -> None:
        """Private constructor. Use Success() or Failure() instead."""
        if not ok and not isinstance(payload, BaseException):
            raise TypeError(f"Failure cause must be an exception, got {type(payload).__name__}")
        object.__setattr__(self, "_payload", payload)
        object.__setattr__(self, "_ok", ok)
        # Traceback at capture; every get() re-raises from here so callers never extend it
        object.__setattr__(self, "_tb", None if ok else payload.__traceback__)

    def __setattr__(self, name: str, value: object) -> NoReturn:
        raise AttributeError(f"{type(self).__name__} is immutable")

    # ─── Variant Checks ─────────────────────────────────────────────────

    def is_success(self) -> bool:
        return self._ok

    def is_failure(self) -> bool:
        return not self._ok

    # ─── Extraction ──────────────────────────────────────────────────────

    def get(self) -> V:
        """Return the success value, or re-raise the failure cause."""
        if self._ok:
            return self._payload  # type: ignore[return-value]
        raise self._payload.with_traceback(self._tb)  # type: ignore[union-attr]

    @property
    def value(self) -> V:
        """Success value. Same as get(): raises the cause on Failure."""
        return self.get()

    @property
    def cause(self) -> BaseException | None:
        """Failure cause, None on Success."""
        return None if self._ok else self._payload  # type: ignore[return-value]

    def get_or(self, default: V) -> V:
        return self._payload if self._ok else default  # type: ignore[return-value]

    def to_optional(self) -> V | None:
        return self._payload if self._ok else None  # type: ignore[return-value]

    # ─── Transformations ─────────────────────────────────────────────────

    def map(self, f: Callable[[V], U]) -> Outcome[U]:
        """Apply f to a Success value. Exceptions raised by f become a Failure."""
        if not self._ok:
            return self  # type: ignore[return-value]
        try:
            return Outcome(f(self._payload), _SUCCESS)  # type: ignore[arg-type]
        except Exception as e:
            return Outcome(e, _FAILURE)

    def flat_map(self, f: Callable[[V], Outcome[U]]) -> Outcome[U]:
        """Monadic bind: chain a step that itself yields an Outcome."""
        return f(self._payload) if self._ok else self  # type: ignore[arg-type,return-value]

    def recover(self, f: Callable[[BaseException], V]) -> Outcome[V]:
        """Turn a Failure into a Success computed from its cause."""
        if self._ok:
            return self
        try:
            return Outcome(f(self._payload), _SUCCESS)  # type: ignore[arg-type]
        except Exception as e:
            return Outcome(e, _FAILURE)

    def match(self, *, success: Callable[[V], U], failure: Callable[[BaseException], U]) -> U:
        """Exhaustive match over both variants."""
        return success(self._payload) if self._ok else failure(self._payload)  # type: ignore[arg-type]

    # ─── Capture ─────────────────────────────────────────────────────────

    @classmethod
    def catching(cls, fn: Callable[P, V], *args: P.args, **kwargs: P.kwargs) -> Outcome[V]:
        """Call fn, capturing an Exception as Failure."""
        try:
            return cls(fn(*args, **kwargs), _SUCCESS)
        except Exception as e:
            return cls(e, _FAILURE)

    @classmethod
    async def catching_async(
        cls, fn: Callable[P, Awaitable[V]], *args: P.args, **kwargs: P.kwargs,
    ) -> Outcome[V]:
        """Await fn, capturing an Exception as Failure.

        Only Exception is captured: asyncio.CancelledError keeps propagating so
        the enclosing scope can turn it into a cancellation failure.
        """
        try:
            return cls(await fn(*args, **kwargs), _SUCCESS)
        except Exception as e:
            return cls(e, _FAILURE)

    # ─── Dunder Methods ──────────────────────────────────────────────────

    def __bool__(self) -> bool:
        return self._ok

    def __hash__(self) -> int:
        return hash((self._ok, self._payload if self._ok else type(self._payload)))

    def __repr__(self) -> str:
        return f"{'Success' if self._ok else 'Failure'}({self._payload!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Outcome):
            return NotImplemented
        if self._ok != other._ok:
            return False
        if self._ok:
            return self._payload == other._payload
        # Exceptions compare by identity; fall back to type + args for equal-looking failures
        a, b = self._payload, other._payload
        return a is b or (type(a) is type(b) and a.args == b.args)  # type: ignore[union-attr]

    def __iter__(self) -> Iterator[V]:
        """Yields the value on Success, nothing on Failure."""
        if self._ok:
            yield self._payload  # type: ignore[misc]


# ═══════════════════════════════════════════════════════════════════════════════
# Constructors
# ═══════════════════════════════════════════════════════════════════════════════


def Success(value: V) -> Outcome[V]:  # noqa: N802
    """Construct the success variant."""
    return Outcome(value, _SUCCESS)


def Failure(cause: BaseException) -> Outcome[V]:  # noqa: N802
    """Construct the failure variant."""
    return Outcome(cause, _FAILURE)


# ═══════════════════════════════════════════════════════════════════════════════
# Collection Operations
# ═══════════════════════════════════════════════════════════════════════════════


def collect_outcomes(outcomes: Mapping[K, Outcome[V]]) -> tuple[dict[K, V], dict[K, BaseException]]:
    """Split a key → Outcome mapping into (successes, failures)."""
    ok: dict[K, V] = {}
    failed: dict[K, BaseException] = {}
    for key, o in outcomes.items():
        if o._ok:
            ok[key] = o._payload  # type: ignore[assignment]
        else:
            failed[key] = o._payload  # type: ignore[assignment]
    return ok, failed


def as_outcome(value: V | Outcome[V]) -> Outcome[V]:
    """Wrap a raw value as Success; pass an existing Outcome through."""
    return value if isinstance(value, Outcome) else Outcome(value, _SUCCESS)
