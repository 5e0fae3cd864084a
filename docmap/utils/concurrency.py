"""Shared concurrency primitives for chunk-level fan-out.

Two patterns are exposed:

1. **throttled_gather** -- A drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  The extraction
   orchestrator uses it with a semaphore shared by every document being
   processed, so the number of in-flight provider calls across the whole
   process never exceeds the configured chunk concurrency.

2. **SlidingWindowRateLimiter** -- A per-provider requests-per-window
   budget.  ``acquire()`` suspends the calling task (never the event loop)
   until a slot inside the window frees up.

Neither primitive is created at import time: callers construct them and
inject them where needed.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore for concurrency control.  May be shared between several
        ``throttled_gather`` calls to enforce a global budget.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


class SlidingWindowRateLimiter:
    """Allow at most ``max_requests`` acquisitions per ``window_seconds``.

    A ``max_requests`` of ``0`` disables limiting entirely.

    Parameters
    ----------
    max_requests:
        Number of requests allowed inside any window.
    window_seconds:
        Window length in seconds (60 for a requests-per-minute budget).
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self._max_requests > 0

    def _evict(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self._window:
            self._timestamps.popleft()

    def available(self) -> int:
        """Return how many requests could start right now."""
        if not self.enabled:
            return 1
        self._evict(self._clock())
        return max(0, self._max_requests - len(self._timestamps))

    async def acquire(self) -> None:
        """Wait until a request slot is free, then claim it."""
        if not self.enabled:
            return
        # The lock keeps waiters in arrival order.
        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._timestamps) < self._max_requests:
                    self._timestamps.append(now)
                    return
                wait = self._window - (now - self._timestamps[0])
                await asyncio.sleep(max(wait, 0.0))
