"""Full strategy: fetch hops through an evasion browser session."""

from __future__ import annotations

import structlog

from streamhop.domain.entities.resolution import HopResult
from streamhop.domain.exceptions import AntiBotChallengeError, UpstreamRejectedError
from streamhop.infrastructure.evasion.challenge import is_challenge_page
from streamhop.infrastructure.evasion.session import EvasionSession
from streamhop.infrastructure.navigator.rules import clean_tracking_url

log = structlog.get_logger(__name__)

_TEXT_TYPES = ("json", "javascript", "text/plain", "mpegurl")


class BrowserHopFetcher:
    """``HopFetcherPort`` that loads each hop in the session's page.

    HTML hops get the behavioural interaction (presence simulation + play
    trigger); the body returned is the page plus all child frames, and
    ``captured`` lists playlist URLs seen on the wire while loading.
    """

    def __init__(
        self,
        session: EvasionSession,
        *,
        capture_timeout: float = 2.0,
        stream_buffer: int = 32,
    ) -> None:
        self._session = session
        self._capture_timeout = capture_timeout
        self._stream_buffer = stream_buffer

    async def fetch(self, url: str, *, referer: str | None = None) -> HopResult:
        session = self._session
        async with session.responses(self._stream_buffer) as stream:
            response = await session.goto(url, referer=referer)
            status = response.status if response is not None else 200
            headers = response.headers if response is not None else {}
            content_type = headers.get("content-type", "")

            if status >= 400:
                html = await session.page.content()
                if is_challenge_page(status, html):
                    raise AntiBotChallengeError(f"challenge page (HTTP {status})")
                raise UpstreamRejectedError(status, url)

            if response is not None and any(t in content_type for t in _TEXT_TYPES):
                # API / playlist responses: use the raw payload, not the
                # DOM Chromium wraps around it.
                body = await response.text()
                return HopResult(
                    url=session.page.url or url,
                    status=status,
                    content_type=content_type,
                    body=body,
                    captured=tuple(stream.drain()),
                )

            if await session.is_challenged():
                raise AntiBotChallengeError("challenge page after navigation")

            captured = stream.drain()
            if not captured:
                await session.interact(stream)
                captured = stream.drain()
                if not captured:
                    first = await stream.first(self._capture_timeout)
                    if first:
                        captured = [first]

            body = await session.content()

        captured_urls = tuple(clean_tracking_url(u) for u in captured)
        log.debug(
            "browser_hop_loaded",
            url=url[:120],
            status=status,
            frames=len(session.page.frames),
            captured=len(captured_urls),
        )
        return HopResult(
            url=session.page.url or url,
            status=status,
            content_type=content_type,
            body=body,
            captured=captured_urls,
        )
