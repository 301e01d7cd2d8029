"""Tests for BatchWindow coalescing, memoisation and shutdown.

Validates:
- Keys requested in the same loop turn share one backend call
- Repeated keys within a request are served from the memo
- Omitted keys and batch-wide errors settle every future
- Closing the window leaves no caller waiting
"""

from __future__ import annotations

import asyncio

import pytest

from batchloader.foundation.errors import LoadCancelledError, MissingKeyError, Success
from batchloader.foundation.testing import RecordingMultiResolver, RecordingResolver
from batchloader.loading import BatchWindow, KeyState, MultiKeyStrategy, SingleKeyStrategy


class CompanyResolver(RecordingMultiResolver[int, str]):
    pass


class NameResolver(RecordingResolver[int, str]):
    pass


COMPANIES = {1: "Acme", 2: "Globex", 3: "Initech"}


def make_window(resolver: CompanyResolver, *, cache: bool = True) -> BatchWindow[int, str]:
    return BatchWindow(resolver.name, MultiKeyStrategy(resolver), cache=cache)


# ═════════════════════════════════════════════════════════════════════════════
# Coalescing
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_same_turn_requests_share_one_batch() -> None:
    resolver = CompanyResolver(values=COMPANIES)
    window = make_window(resolver)

    results = await asyncio.gather(*(window.load(k) for k in (1, 2, 3)))

    assert [r.get() for r in results] == ["Acme", "Globex", "Initech"]
    resolver.assert_called_once()
    assert resolver.last_call.keys == frozenset({1, 2, 3})
    assert window.stats.batch_count == 1
    assert window.stats.dispatched_key_count == 3


@pytest.mark.asyncio
async def test_single_key_strategy_batches_too() -> None:
    resolver = NameResolver(values={1: "A", 2: "B"})
    window = BatchWindow(resolver.name, SingleKeyStrategy(resolver))

    a, b = await window.load_many([1, 2])

    assert (a.get(), b.get()) == ("A", "B")
    assert window.stats.batch_count == 1
    assert sorted(resolver.requested_keys) == [1, 2]


@pytest.mark.asyncio
async def test_load_many_preserves_input_order() -> None:
    window = make_window(CompanyResolver(values=COMPANIES))

    results = await window.load_many([3, 1, 2, 1])

    assert [r.get() for r in results] == ["Initech", "Acme", "Globex", "Acme"]


@pytest.mark.asyncio
async def test_load_many_empty() -> None:
    resolver = CompanyResolver(values=COMPANIES)
    assert await make_window(resolver).load_many([]) == []
    resolver.assert_not_called()


@pytest.mark.asyncio
async def test_later_wave_opens_new_batch() -> None:
    """Keys requested after dispatch form a new batch; memoised keys are not refetched."""
    resolver = CompanyResolver(values=COMPANIES)
    window = make_window(resolver)

    await window.load_many([1, 2])
    await window.load_many([2, 3])

    assert window.stats.batch_count == 2
    assert resolver.invocations[1].keys == frozenset({3})


# ═════════════════════════════════════════════════════════════════════════════
# Memoisation
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_repeated_key_returns_memoised_outcome() -> None:
    resolver = CompanyResolver(values=COMPANIES)
    window = make_window(resolver)

    first = await window.load(1)
    second = await window.load(1)

    assert first is second
    resolver.assert_called_once()
    assert window.stats.load_count == 2
    assert window.stats.cache_hit_count == 1
    assert window.stats.cache_hit_ratio == 0.5


@pytest.mark.asyncio
async def test_same_key_in_flight_shares_future() -> None:
    window = make_window(CompanyResolver(values=COMPANIES))
    assert window.request(1) is window.request(1)
    await window.dispatch()


@pytest.mark.asyncio
async def test_cache_disabled_refetches_after_resolution() -> None:
    resolver = CompanyResolver(values=COMPANIES)
    window = make_window(resolver, cache=False)

    await window.load(1)
    await window.load(1)

    assert resolver.call_count == 2


@pytest.mark.asyncio
async def test_prime_seeds_memo() -> None:
    resolver = CompanyResolver(values=COMPANIES)
    window = make_window(resolver)

    assert window.prime(7, "Hooli")
    assert not window.prime(7, "Other")
    assert (await window.load(7)).get() == "Hooli"
    resolver.assert_not_called()


@pytest.mark.asyncio
async def test_clear_forces_refetch() -> None:
    resolver = CompanyResolver(values=COMPANIES)
    window = make_window(resolver)

    await window.load(1)
    assert window.clear(1)
    assert not window.clear(1)
    await window.load(1)

    assert resolver.call_count == 2


@pytest.mark.asyncio
async def test_clear_keeps_in_flight_keys() -> None:
    window = make_window(CompanyResolver(values=COMPANIES))
    fut = window.request(1)
    assert not window.clear(1)
    assert window.clear_all() == 0
    assert (await fut).get() == "Acme"
    assert window.clear_all() == 1


# ═════════════════════════════════════════════════════════════════════════════
# Failures
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_omitted_key_fails_with_missing_key() -> None:
    window = make_window(CompanyResolver(values=COMPANIES, omit={2}))

    ok, missing = await window.load_many([1, 2])

    assert ok.get() == "Acme"
    assert isinstance(missing.cause, MissingKeyError)
    assert missing.cause.key == 2


@pytest.mark.asyncio
async def test_batch_error_fails_every_key_with_same_cause(log_entries) -> None:
    err = ConnectionError("company service down")
    window = make_window(CompanyResolver(batch_error=err))

    results = await window.load_many([1, 2, 3])

    assert all(r.cause is err for r in results)
    (entry,) = [e for e in log_entries.entries if e.event == "batch failed"]
    assert entry.level == "warning"
    assert entry.context["size"] == 3
    assert entry.context["error"] == repr(err)


@pytest.mark.asyncio
async def test_key_lifecycle_states() -> None:
    window = make_window(CompanyResolver(values=COMPANIES))

    fut = window.request(1)
    assert window.state_of(1) is KeyState.PENDING
    assert window.pending_keys == frozenset({1})
    await fut
    assert window.state_of(1) is KeyState.RESOLVED
    assert window.pending_keys == frozenset()
    assert window.state_of(99) is None


# ═════════════════════════════════════════════════════════════════════════════
# Explicit Dispatch
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_dispatch_with_nothing_pending_makes_no_call() -> None:
    resolver = CompanyResolver(values=COMPANIES)
    window = make_window(resolver)

    assert await window.dispatch() == {}
    resolver.assert_not_called()


@pytest.mark.asyncio
async def test_explicit_dispatch_returns_outcomes() -> None:
    resolver = CompanyResolver(values=COMPANIES, omit={3})
    window = make_window(resolver)
    window.request(1)
    window.request(3)

    outcomes = await window.dispatch()

    assert outcomes[1] == Success("Acme")
    assert isinstance(outcomes[3].cause, MissingKeyError)
    await asyncio.sleep(0)
    resolver.assert_called_once()


# ═════════════════════════════════════════════════════════════════════════════
# Cancellation & Shutdown
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_cancelling_one_caller_does_not_affect_others() -> None:
    window = make_window(CompanyResolver(values=COMPANIES, delay=0.02))

    first = asyncio.create_task(window.load(1))
    second = asyncio.create_task(window.load(1))
    await asyncio.sleep(0.005)
    first.cancel()

    with pytest.raises(asyncio.CancelledError):
        await first
    assert (await second).get() == "Acme"


@pytest.mark.asyncio
async def test_close_settles_in_flight_keys() -> None:
    window = make_window(CompanyResolver(values=COMPANIES, delay=10))

    fut = window.request(1)
    await asyncio.sleep(0.01)
    assert window.state_of(1) is KeyState.DISPATCHED
    await window.aclose("request aborted")

    outcome = fut.result()
    assert isinstance(outcome.cause, LoadCancelledError)
    assert "request aborted" in str(outcome.cause)


@pytest.mark.asyncio
async def test_close_settles_open_batch() -> None:
    resolver = CompanyResolver(values=COMPANIES)
    window = make_window(resolver)

    fut = window.request(1)
    window.close()
    await asyncio.sleep(0)

    assert isinstance(fut.result().cause, LoadCancelledError)
    resolver.assert_not_called()


@pytest.mark.asyncio
async def test_request_after_close_fails_immediately() -> None:
    window = make_window(CompanyResolver(values=COMPANIES))
    window.close()

    fut = window.request(1)

    assert fut.done()
    assert isinstance(fut.result().cause, LoadCancelledError)
    assert window.closed
