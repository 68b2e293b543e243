"""Fast strategy: fetch hops with a plain HTTP client."""

from __future__ import annotations

import httpx
import structlog

from streamhop.domain.entities.resolution import Fingerprint, HopResult
from streamhop.domain.exceptions import AntiBotChallengeError, UpstreamRejectedError
from streamhop.infrastructure.evasion.challenge import is_challenge_page

log = structlog.get_logger(__name__)

_NAVIGATE_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,image/apng,*/*;q=0.8"
)


def browser_headers(
    fingerprint: Fingerprint, *, referer: str | None = None
) -> dict[str, str]:
    """Headers a real browser with *fingerprint* would send for a navigation."""
    headers = {
        "User-Agent": fingerprint.user_agent,
        "Accept": _NAVIGATE_ACCEPT,
        "Accept-Language": fingerprint.accept_language,
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "iframe" if referer else "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "cross-site" if referer else "none",
    }
    if referer:
        headers["Referer"] = referer
    return headers


class HttpHopFetcher:
    """``HopFetcherPort`` over a shared (throttled) ``httpx.AsyncClient``.

    The client is owned by the composition root; this object only carries
    the fingerprint of one navigator invocation.
    """

    def __init__(self, client: httpx.AsyncClient, fingerprint: Fingerprint) -> None:
        self._client = client
        self._fingerprint = fingerprint

    async def fetch(self, url: str, *, referer: str | None = None) -> HopResult:
        resp = await self._client.get(
            url, headers=browser_headers(self._fingerprint, referer=referer)
        )
        body = resp.text
        log.debug(
            "http_hop_response",
            url=url[:120],
            status=resp.status_code,
            length=len(body),
        )

        if not resp.is_success:
            if is_challenge_page(resp.status_code, body):
                raise AntiBotChallengeError(
                    f"challenge page (HTTP {resp.status_code}) at {resp.url.host}"
                )
            raise UpstreamRejectedError(resp.status_code, str(resp.url))

        return HopResult(
            url=str(resp.url),
            status=resp.status_code,
            content_type=resp.headers.get("content-type", ""),
            body=body,
        )
