"""Page responses as a bounded async stream.

Instead of tying extraction logic to a callback's lifetime, the listener
only enqueues matching response URLs; consumers iterate, wait for the first
match or drain what has arrived.  The buffer is bounded: when it is full new
matches are counted as dropped rather than blocking the browser's event
dispatch.  Leaving the ``async with`` block unsubscribes and wakes any
waiting consumer.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import structlog

log = structlog.get_logger(__name__)

_CLOSED = object()


def is_manifest_response(url: str) -> bool:
    return ".m3u8" in url


class ResponseStream:
    """Subscription to ``page.on("response")`` filtered by *predicate*.

    Usage::

        async with ResponseStream(page) as stream:
            await page.goto(url)
            manifest = await stream.first(timeout=5)
    """

    def __init__(
        self,
        page: Any,
        predicate: Callable[[str], bool] = is_manifest_response,
        *,
        maxsize: int = 32,
    ) -> None:
        self._page = page
        self._predicate = predicate
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self._closed = False
        self.dropped = 0
        self.seen = 0

    async def __aenter__(self) -> ResponseStream:
        self._page.on("response", self._on_response)
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._page.remove_listener("response", self._on_response)
        self.close()
        if self.dropped:
            log.debug("response_stream_dropped", dropped=self.dropped, seen=self.seen)

    def _on_response(self, response: Any) -> None:
        if self._closed:
            return
        url = getattr(response, "url", "")
        if not url or not self._predicate(url):
            return
        self.seen += 1
        # One slot stays reserved for the close marker.
        if self._queue.qsize() >= self._maxsize:
            self.dropped += 1
            return
        self._queue.put_nowait(url)

    def close(self) -> None:
        """Stop accepting responses and release waiting consumers."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                # Keep the marker for other consumers.
                self._queue.put_nowait(_CLOSED)
                return
            yield str(item)

    async def first(self, timeout: float) -> str | None:
        """Wait up to *timeout* seconds for the next matching URL."""
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            return None
        return str(item)

    def drain(self) -> list[str]:
        """Return every URL buffered so far without waiting."""
        urls: list[str] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is _CLOSED:
                self._queue.put_nowait(_CLOSED)
                break
            urls.append(str(item))
        return urls
