"""Tests for the per-key Outcome type.

Validates:
- Variant accessors and unwrap-or-raise
- Functor/monad helpers
- Exception capture (sync and async)
- Immutability and equality
"""

from __future__ import annotations

import asyncio

import pytest

from batchloader.foundation.errors import Failure, Outcome, Success, as_outcome, collect_outcomes


# ═════════════════════════════════════════════════════════════════════════════
# Construction & Extraction
# ═════════════════════════════════════════════════════════════════════════════


def test_success_accessors() -> None:
    o = Success("A")
    assert o.is_success()
    assert not o.is_failure()
    assert o.get() == "A"
    assert o.value == "A"
    assert o.cause is None
    assert bool(o)


def test_failure_get_reraises_original_cause() -> None:
    """Unwrapping a Failure propagates the very same exception instance."""
    cause = LookupError("company 2 not found")
    o: Outcome[str] = Failure(cause)
    assert o.is_failure()
    assert o.cause is cause
    with pytest.raises(LookupError) as info:
        o.get()
    assert info.value is cause
    assert not o


def test_repeated_get_does_not_grow_traceback() -> None:
    def fail() -> int:
        raise LookupError("gone")

    o = Outcome.catching(fail)
    depths = []
    for _ in range(4):
        with pytest.raises(LookupError) as info:
            o.get()
        depths.append(len(info.traceback))
        assert info.traceback[-1].name == "fail"

    assert len(set(depths)) == 1


def test_failure_requires_exception() -> None:
    with pytest.raises(TypeError):
        Outcome("not an exception", False)


def test_get_or_and_to_optional() -> None:
    assert Success(1).get_or(0) == 1
    assert Failure(ValueError()).get_or(0) == 0
    assert Success(1).to_optional() == 1
    assert Failure(ValueError()).to_optional() is None


def test_outcome_is_immutable() -> None:
    o = Success(1)
    with pytest.raises(AttributeError):
        o._payload = 2  # type: ignore[misc]


# ═════════════════════════════════════════════════════════════════════════════
# Transformations
# ═════════════════════════════════════════════════════════════════════════════


def test_map_success_and_failure() -> None:
    assert Success(20).map(lambda x: x + 1) == Success(21)
    err = ValueError("bad")
    assert Failure(err).map(lambda x: x + 1).cause is err


def test_map_captures_exception_from_function() -> None:
    mapped = Success(0).map(lambda x: 1 / x)
    assert mapped.is_failure()
    assert isinstance(mapped.cause, ZeroDivisionError)


def test_flat_map_chains() -> None:
    def positive(x: int) -> Outcome[int]:
        return Success(x) if x > 0 else Failure(ValueError("must be positive"))

    assert Success(5).flat_map(positive).get() == 5
    assert Success(-5).flat_map(positive).is_failure()


def test_recover_turns_failure_into_success() -> None:
    assert Failure(KeyError("k")).recover(lambda e: "fallback").get() == "fallback"
    assert Success("v").recover(lambda e: "fallback").get() == "v"


def test_match_is_exhaustive() -> None:
    assert Success(2).match(success=lambda v: v * 2, failure=lambda e: -1) == 4
    assert Failure(ValueError()).match(success=lambda v: v, failure=lambda e: type(e).__name__) == "ValueError"


def test_iteration_yields_value_only_on_success() -> None:
    assert list(Success(1)) == [1]
    assert list(Failure(ValueError())) == []


# ═════════════════════════════════════════════════════════════════════════════
# Capture
# ═════════════════════════════════════════════════════════════════════════════


def test_catching_sync() -> None:
    assert Outcome.catching(int, "42") == Success(42)
    o = Outcome.catching(int, "x")
    assert isinstance(o.cause, ValueError)


@pytest.mark.asyncio
async def test_catching_async_captures_exception() -> None:
    async def boom(key: int) -> str:
        raise RuntimeError(f"failed {key}")

    o = await Outcome.catching_async(boom, 7)
    assert isinstance(o.cause, RuntimeError)
    assert str(o.cause) == "failed 7"


@pytest.mark.asyncio
async def test_catching_async_lets_cancellation_propagate() -> None:
    async def slow() -> int:
        await asyncio.sleep(10)
        return 1

    task = asyncio.create_task(Outcome.catching_async(slow))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


# ═════════════════════════════════════════════════════════════════════════════
# Equality & Collections
# ═════════════════════════════════════════════════════════════════════════════


def test_equality() -> None:
    assert Success(1) == Success(1)
    assert Success(1) != Success(2)
    assert Success(1) != Failure(ValueError("1"))
    assert Failure(ValueError("x")) == Failure(ValueError("x"))
    assert Failure(ValueError("x")) != Failure(KeyError("x"))
    assert hash(Failure(ValueError("x"))) == hash(Failure(ValueError("x")))


def test_repr() -> None:
    assert repr(Success(42)) == "Success(42)"
    assert repr(Failure(ValueError("bad"))) == "Failure(ValueError('bad'))"


def test_collect_outcomes_splits_by_variant() -> None:
    err = RuntimeError("2 failed")
    ok, failed = collect_outcomes({1: Success("A"), 2: Failure(err), 3: Success("C")})
    assert ok == {1: "A", 3: "C"}
    assert failed == {2: err}


def test_as_outcome_wraps_raw_values() -> None:
    existing = Failure(ValueError())
    assert as_outcome(existing) is existing
    assert as_outcome("raw") == Success("raw")
