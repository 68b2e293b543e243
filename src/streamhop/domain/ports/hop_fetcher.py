"""Port for fetching the content of one hop in the resolution chain."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from streamhop.domain.entities.resolution import HopResult


@runtime_checkable
class HopFetcherPort(Protocol):
    """Fetches a hop URL through one extraction strategy.

    Implementations raise on failure (httpx / Playwright errors or a
    ``ChainError`` subclass); classification happens in the navigator.
    """

    async def fetch(self, url: str, *, referer: str | None = None) -> HopResult:
        """Fetch *url* and return its content."""
        ...
