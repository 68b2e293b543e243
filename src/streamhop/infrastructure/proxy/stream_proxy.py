"""Same-origin passthrough for resolved streams.

Upstream playlist hosts are picky about request headers: most reject the
Origin/Referer a browser adds to cross-origin requests, while some CDNs
refuse anything that does not look like it came from their own embed page.
The proxy fetches every playlist and segment server-side with the header
profile of the server the stream was resolved from, and rewrites each URI
line of a playlist into a link back to the proxy (carrying that server
name along), so the player never talks to the upstream host directly.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Literal
from urllib.parse import quote, urljoin, urlparse

import httpx
import structlog

from streamhop.domain.entities.resolution import is_plain_manifest
from streamhop.domain.exceptions import UpstreamRejectedError
from streamhop.infrastructure.codec.payload_codec import (
    VIDSRC_CC_MANIFEST_KEY,
    decode_manifest,
)

log = structlog.get_logger(__name__)

ProxyKind = Literal["manifest", "segment"]

MANIFEST_MEDIA_TYPE = "application/vnd.apple.mpegurl"
DEFAULT_MEDIA_TYPE = "application/octet-stream"

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Range",
    "Access-Control-Expose-Headers": "Content-Length, Content-Range",
}

# Response headers relayed from upstream on passthrough.
_RELAYED_HEADERS = ("content-length", "content-range", "accept-ranges")

# Accept values sent with a header profile, by path fragment.
_ACCEPT_BY_PATH = (
    (".m3u8", "application/vnd.apple.mpegurl, application/x-mpegURL, */*"),
    (".ts", "video/MP2T, */*"),
    (".mp4", "video/mp4, */*"),
    (".vtt", "text/vtt, text/plain, */*"),
    (".srt", "text/vtt, text/plain, */*"),
)


def minimal_headers(user_agent: str) -> dict[str, str]:
    """The default upstream header set: no Origin, no Referer."""
    return {"User-Agent": user_agent, "Accept": "*/*"}


def upstream_headers(
    user_agent: str, target_url: str, profile: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Headers for fetching *target_url*.

    Without a *profile* this is :func:`minimal_headers`.  A profile (the
    Referer/Origin/Sec-Fetch set a CDN insists on) is layered on top, and
    ``Accept`` is narrowed to the kind of resource being fetched.
    """
    headers = minimal_headers(user_agent)
    if not profile:
        return headers
    headers.update(profile)
    path = urlparse(target_url).path.lower()
    for fragment, accept in _ACCEPT_BY_PATH:
        if fragment in path:
            headers["Accept"] = accept
            break
    return headers


def proxy_link(
    target: str,
    kind: ProxyKind,
    proxy_base: str = "",
    source: str | None = None,
) -> str:
    """Proxy URL carrying *target* (and the resolving server) as parameters."""
    link = f"{proxy_base.rstrip('/')}/proxy/{kind}?url={quote(target, safe='')}"
    if source:
        link += f"&source={quote(source, safe='')}"
    return link


def rewrite_manifest(
    content: str,
    manifest_url: str,
    proxy_base: str = "",
    source: str | None = None,
) -> str:
    """Rewrite every URI line of a playlist into a proxy link.

    Comment/tag lines and blank lines are kept byte-identical.  URI lines
    (absolute, root-relative or relative to the playlist) are resolved
    against *manifest_url*; nested playlists go to the manifest route,
    everything else to the segment route.  Line endings are preserved, and
    *source* is carried into every link so nested fetches keep the same
    header profile.
    """
    out: list[str] = []
    for line in content.splitlines(keepends=True):
        body = line.rstrip("\r\n")
        ending = line[len(body):]
        stripped = body.strip()
        if not stripped or stripped.startswith("#"):
            out.append(line)
            continue
        target = urljoin(manifest_url, stripped)
        kind: ProxyKind = "manifest" if ".m3u8" in urlparse(target).path else "segment"
        out.append(proxy_link(target, kind, proxy_base, source) + ending)
    return "".join(out)


@dataclass
class ProxiedStream:
    """Upstream response being relayed to the client."""

    chunks: AsyncIterator[bytes]
    status_code: int
    content_type: str
    headers: dict[str, str] = field(default_factory=dict)


async def _single(payload: bytes) -> AsyncIterator[bytes]:
    yield payload


class StreamProxy:
    """Fetches and relays playlists and segments.

    Args:
        client: Shared ``AsyncClient`` (throttled without jitter).
        user_agent: User agent sent upstream.
        proxy_base: Absolute origin for rewritten links; empty keeps them
            root-relative to this service.
        manifest_key: Key for obfuscated playlist bodies.
        chunk_size: Passthrough chunk size in bytes.
        header_profiles: Server name -> headers its CDN expects.  Servers
            without a profile get :func:`minimal_headers`.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        user_agent: str,
        proxy_base: str = "",
        manifest_key: str = VIDSRC_CC_MANIFEST_KEY,
        chunk_size: int = 65_536,
        header_profiles: Mapping[str, Mapping[str, str]] | None = None,
    ) -> None:
        self._client = client
        self._user_agent = user_agent
        self._proxy_base = proxy_base
        self._manifest_key = manifest_key
        self._chunk_size = chunk_size
        self._profiles = dict(header_profiles or {})

    def headers_for(self, url: str, source: str | None = None) -> dict[str, str]:
        """Upstream headers for *url* resolved from server *source*."""
        profile = self._profiles.get(source) if source else None
        return upstream_headers(self._user_agent, url, profile)

    async def fetch_bytes(
        self, url: str, *, source: str | None = None
    ) -> tuple[bytes, str]:
        """Fetch *url* fully; returns ``(body, content_type)``."""
        resp = await self._client.get(url, headers=self.headers_for(url, source))
        if not resp.is_success:
            raise UpstreamRejectedError(resp.status_code, url)
        return resp.content, resp.headers.get("content-type", DEFAULT_MEDIA_TYPE)

    async def fetch_manifest(self, url: str, *, source: str | None = None) -> str:
        """Fetch, de-obfuscate if needed and rewrite the playlist at *url*.

        Raises:
            UpstreamRejectedError: Upstream answered non-2xx.
            PayloadDecodeError: Body is neither a playlist nor decodable.
        """
        resp = await self._client.get(url, headers=self.headers_for(url, source))
        if not resp.is_success:
            raise UpstreamRejectedError(resp.status_code, url)
        text = resp.text
        if not is_plain_manifest(text):
            text = decode_manifest(text, self._manifest_key)
        rewritten = rewrite_manifest(text, str(resp.url), self._proxy_base, source)
        log.debug(
            "proxy_manifest_rewritten",
            url=url[:120],
            source=source,
            length=len(rewritten),
        )
        return rewritten

    async def open_stream(
        self,
        url: str,
        *,
        range_header: str | None = None,
        source: str | None = None,
    ) -> ProxiedStream:
        """Start relaying *url*; the upstream body is closed when iteration ends.

        Closing the returned iterator early (client disconnect) closes the
        upstream response as well.
        """
        headers = self.headers_for(url, source)
        if range_header:
            headers["Range"] = range_header
        resp = await self._client.send(
            self._client.build_request("GET", url, headers=headers),
            stream=True,
        )
        if not resp.is_success:
            await resp.aclose()
            raise UpstreamRejectedError(resp.status_code, url)

        relayed = {
            name.title(): resp.headers[name]
            for name in _RELAYED_HEADERS
            if name in resp.headers
        }
        chunk_size = self._chunk_size

        async def _iter() -> AsyncIterator[bytes]:
            try:
                async for chunk in resp.aiter_bytes(chunk_size=chunk_size):
                    yield chunk
            finally:
                await resp.aclose()

        return ProxiedStream(
            chunks=_iter(),
            status_code=resp.status_code,
            content_type=resp.headers.get("content-type", DEFAULT_MEDIA_TYPE),
            headers=relayed,
        )

    async def proxy(
        self,
        target_url: str,
        kind: ProxyKind,
        *,
        range_header: str | None = None,
        source: str | None = None,
    ) -> ProxiedStream:
        """Relay *target_url* as a rewritten playlist or raw bytes."""
        if kind == "manifest":
            body = (await self.fetch_manifest(target_url, source=source)).encode(
                "utf-8"
            )
            return ProxiedStream(
                chunks=_single(body),
                status_code=200,
                content_type=MANIFEST_MEDIA_TYPE,
                headers={"Content-Length": str(len(body))},
            )
        return await self.open_stream(
            target_url, range_header=range_header, source=source
        )
