"""Thread offloading for blocking resolvers.

Single-key resolvers may implement `fetch` as a plain blocking function
(e.g. a sync HTTP client). Those calls run on a shared ThreadPoolExecutor so
they fan out like async fetches instead of blocking the event loop.
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, ParamSpec, TypeVar

T = TypeVar("T")
P = ParamSpec("P")

_CPU_COUNT = os.cpu_count() or 1
DEFAULT_THREAD_WORKERS = min(32, _CPU_COUNT + 4)

_default_pool: ThreadPoolExecutor | None = None


def _get_default_pool() -> ThreadPoolExecutor:
    global _default_pool
    if _default_pool is None:
        _default_pool = ThreadPoolExecutor(max_workers=DEFAULT_THREAD_WORKERS, thread_name_prefix="batchloader-")
    return _default_pool


async def run_in_thread(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a blocking function on the shared thread pool, preserving contextvars."""
    loop = asyncio.get_running_loop()
    ctx = contextvars.copy_context()
    call = functools.partial(ctx.run, func, *args, **kwargs)
    return await loop.run_in_executor(_get_default_pool(), call)


def shutdown_default_pool(wait: bool = True) -> None:
    """Shut down the shared pool (e.g. at process exit). A later call recreates it."""
    global _default_pool
    if _default_pool is not None:
        _default_pool.shutdown(wait=wait)
        _default_pool = None
