"""Same-origin passthrough routes for playlists and media segments."""

from __future__ import annotations

from typing import cast
from urllib.parse import urlparse

import httpx
import structlog
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse, Response, StreamingResponse

from streamhop.domain.exceptions import ChainError
from streamhop.infrastructure.proxy import CORS_HEADERS, MANIFEST_MEDIA_TYPE
from streamhop.interfaces.api.errors import error_response, upstream_error_response
from streamhop.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/proxy", tags=["proxy"])

NO_STORE = {"Cache-Control": "no-store"}


class TargetUrlError(ValueError):
    """The ``url`` query parameter is missing or not an http(s) URL."""


def target_url(request: Request) -> str:
    """Validated upstream URL from the ``url`` query parameter."""
    raw = (request.query_params.get("url") or "").strip()
    if not raw:
        raise TargetUrlError("url parameter is required")
    parsed = urlparse(raw)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise TargetUrlError("url must be an absolute http(s) URL")
    return raw


def source_name(request: Request) -> str | None:
    """Server the proxied URL was resolved from, selecting upstream headers."""
    return (request.query_params.get("source") or "").strip() or None


def preflight_response() -> Response:
    return Response(status_code=204, headers=CORS_HEADERS)


@router.options("/manifest")
@router.options("/segment")
async def proxy_preflight() -> Response:
    return preflight_response()


@router.get("/manifest")
async def proxy_manifest(request: Request) -> Response:
    """Fetch a playlist server-side and rewrite its URIs through this proxy.

    When the upstream fetch fails the client is redirected to the original
    URL instead, so playback can still be attempted directly.
    """
    state = cast(AppState, request.app.state)
    try:
        url = target_url(request)
    except TargetUrlError as exc:
        return error_response(400, str(exc), headers=CORS_HEADERS)

    try:
        body = await state.stream_proxy.fetch_manifest(
            url, source=source_name(request)
        )
    except (ChainError, httpx.HTTPError) as exc:
        log.warning(
            "proxy_manifest_fallback",
            url=url[:120],
            error=type(exc).__name__,
            detail=str(exc)[:200],
        )
        return RedirectResponse(
            url,
            status_code=302,
            headers={
                **CORS_HEADERS,
                **NO_STORE,
                "X-Proxy-Status": "redirect-fallback",
            },
        )

    return Response(
        content=body,
        media_type=MANIFEST_MEDIA_TYPE,
        headers={**CORS_HEADERS, **NO_STORE},
    )


@router.get("/segment")
async def proxy_segment(request: Request) -> Response:
    """Relay segment bytes (Range requests included) from upstream."""
    state = cast(AppState, request.app.state)
    try:
        url = target_url(request)
    except TargetUrlError as exc:
        return error_response(400, str(exc), headers=CORS_HEADERS)

    range_header = request.headers.get("range")
    try:
        upstream = await state.stream_proxy.open_stream(
            url, range_header=range_header, source=source_name(request)
        )
    except (ChainError, httpx.HTTPError) as exc:
        log.warning(
            "proxy_segment_failed",
            url=url[:120],
            error=type(exc).__name__,
            range=range_header,
        )
        return upstream_error_response(exc, headers=CORS_HEADERS)

    return StreamingResponse(
        upstream.chunks,
        status_code=upstream.status_code,
        media_type=upstream.content_type,
        headers={**CORS_HEADERS, **upstream.headers},
    )
