"""httpx transport that gates every request through the shared throttler."""

from __future__ import annotations

import httpx
import structlog

from streamhop.infrastructure.common.rate_limiter import RequestThrottler

log = structlog.get_logger(__name__)


class ThrottledTransport(httpx.AsyncBaseTransport):
    """Wraps an httpx transport with per-host throttling.

    Unlike a retrying transport, this never re-sends: recovery is decided by
    the retry/fallback controller from the classified failure, so the
    transport only waits for clearance and forwards the request.

    Args:
        wrapped: Transport that performs the actual I/O.
        throttler: Process-wide throttler.
        jitter: Apply the randomised pre-request delay.
    """

    def __init__(
        self,
        wrapped: httpx.AsyncBaseTransport,
        throttler: RequestThrottler,
        *,
        jitter: bool = True,
    ) -> None:
        self._wrapped = wrapped
        self._throttler = throttler
        self._jitter = jitter

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await self._throttler.acquire(str(request.url), jitter=self._jitter)
        return await self._wrapped.handle_async_request(request)

    async def aclose(self) -> None:
        """Close the wrapped transport."""
        await self._wrapped.aclose()


def build_client(
    throttler: RequestThrottler,
    *,
    timeout: float,
    follow_redirects: bool = True,
    jitter: bool = True,
    headers: dict[str, str] | None = None,
) -> httpx.AsyncClient:
    """Create an ``AsyncClient`` whose requests pass through *throttler*."""
    transport = ThrottledTransport(
        httpx.AsyncHTTPTransport(), throttler, jitter=jitter
    )
    return httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(timeout),
        follow_redirects=follow_redirects,
        headers=headers,
    )
