"""Per-host sliding-window throttler for outgoing requests.

Every outbound call (HTTP hop fetches, browser navigations, proxy passthrough)
reserves a slot in the window of its upstream host before going out.  A host
admits up to *burst_limit* requests per *window_seconds*; further callers are
scheduled behind the oldest reservation still inside the window.

The reservation is computed under the lock and the caller sleeps *outside* it,
so a delayed request never blocks another host or another caller's
bookkeeping.  A caller cancelled while sleeping gives its slot back.
"""

from __future__ import annotations

import asyncio
import bisect
import random
import time
from collections.abc import Awaitable, Callable
from urllib.parse import urlparse

import structlog

log = structlog.get_logger(__name__)


def host_key(url: str) -> str:
    """Registrable part of *url*'s host: ``a.b.example.com`` -> ``example.com``."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return ""
    if not hostname:
        return ""
    parts = hostname.split(".")
    return ".".join(parts[-2:]) if len(parts) >= 2 else parts[0]


class HostWindow:
    """Reservation book for one upstream host.

    Args:
        burst_limit: Requests admitted per window.
        window_seconds: Length of the sliding window.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        burst_limit: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._burst = burst_limit
        self._window = window_seconds
        self._clock = clock
        self._slots: list[float] = []
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> int:
        """Reservations still inside the window (diagnostics)."""
        cutoff = self._clock() - self._window
        return sum(1 for slot in self._slots if slot > cutoff)

    async def reserve(self, jitter: float = 0.0) -> float:
        """Book a start time and return it; never sleeps."""
        async with self._lock:
            now = self._clock()
            cutoff = now - self._window
            # Drop reservations that have left the window.
            drop = bisect.bisect_right(self._slots, cutoff)
            if drop:
                del self._slots[:drop]

            start = now + jitter
            if len(self._slots) >= self._burst:
                start = max(start, self._slots[-self._burst] + self._window)
            bisect.insort(self._slots, start)
            return start

    def release(self, slot: float) -> None:
        """Return an unused reservation (caller was cancelled before start)."""
        index = bisect.bisect_left(self._slots, slot)
        if index < len(self._slots) and self._slots[index] == slot:
            del self._slots[index]


class RequestThrottler:
    """Process-wide throttler shared by every component doing outbound I/O.

    Args:
        burst_limit: Requests admitted per host within one window.
        window_seconds: Sliding window length.
        min_delay_ms: Lower bound of the random pre-request delay.
        max_delay_ms: Upper bound of the random pre-request delay.
        clock: Monotonic time source.
        sleep: Awaitable sleep (injectable for tests).
        rng: Random source for the jitter.
    """

    def __init__(
        self,
        burst_limit: int = 10,
        window_seconds: float = 10.0,
        *,
        min_delay_ms: int = 100,
        max_delay_ms: int = 800,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if burst_limit < 1:
            raise ValueError("burst_limit must be >= 1")
        if min_delay_ms > max_delay_ms:
            raise ValueError("min_delay_ms must not exceed max_delay_ms")
        self._burst = burst_limit
        self._window = window_seconds
        self._min_delay = min_delay_ms / 1000.0
        self._max_delay = max_delay_ms / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._hosts: dict[str, HostWindow] = {}

    def _window_for(self, key: str) -> HostWindow:
        window = self._hosts.get(key)
        if window is None:
            window = self._hosts.setdefault(
                key, HostWindow(self._burst, self._window, clock=self._clock)
            )
        return window

    def _jitter(self) -> float:
        if self._max_delay <= 0:
            return 0.0
        return self._rng.uniform(self._min_delay, self._max_delay)

    async def acquire(self, url: str, *, jitter: bool = True) -> None:
        """Wait until *url*'s host admits another request.

        Args:
            url: Target URL; requests without a hostname are not throttled.
            jitter: Add the randomised human-like delay.  Streaming
                passthrough disables it; only the burst window applies.
        """
        key = host_key(url)
        if not key:
            return

        window = self._window_for(key)
        slot = await window.reserve(self._jitter() if jitter else 0.0)
        delay = slot - self._clock()
        if delay <= 0:
            return

        if delay > self._max_delay:
            log.debug("throttle_delayed", host=key, delay=round(delay, 3))
        try:
            await self._sleep(delay)
        except asyncio.CancelledError:
            window.release(slot)
            raise

    def pending(self, url: str) -> int:
        """Number of reservations currently inside *url*'s host window."""
        window = self._hosts.get(host_key(url))
        return window.pending if window is not None else 0
