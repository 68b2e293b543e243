"""Subtitle routes: OpenSubtitles search and the SubRip -> WebVTT passthrough."""

from __future__ import annotations

from typing import cast

import httpx
import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from streamhop.domain.entities.resolution import FailureClass
from streamhop.domain.exceptions import ChainError
from streamhop.infrastructure.proxy import (
    CORS_HEADERS,
    DEFAULT_LANGUAGE,
    VTT_HEADER,
    VTT_MEDIA_TYPE,
    SearchQueryError,
    normalize_subtitle,
    language_name,
)
from streamhop.interfaces.api.errors import error_response, upstream_error_response
from streamhop.interfaces.api.proxy.router import (
    TargetUrlError,
    preflight_response,
    target_url,
)
from streamhop.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["subtitles"])

_PLAIN_MEDIA_TYPE = "text/plain; charset=utf-8"


@router.options("/subtitles")
async def subtitles_preflight() -> Response:
    return preflight_response()


@router.get("/subtitles")
async def subtitles(request: Request) -> Response:
    state = cast(AppState, request.app.state)
    try:
        url = target_url(request)
    except TargetUrlError as exc:
        return error_response(400, str(exc), headers=CORS_HEADERS)

    try:
        payload, _ = await state.stream_proxy.fetch_bytes(url)
    except (ChainError, httpx.HTTPError) as exc:
        log.warning("subtitle_fetch_failed", url=url[:120], error=type(exc).__name__)
        return upstream_error_response(exc, headers=CORS_HEADERS)

    try:
        text = normalize_subtitle(payload)
    except ValueError as exc:
        log.warning("subtitle_decode_failed", url=url[:120], error=str(exc))
        return error_response(
            502,
            "subtitle payload could not be decoded",
            failure_class=FailureClass.DECODE_ERROR,
            headers=CORS_HEADERS,
        )

    is_vtt = text.lstrip("\ufeff").startswith(VTT_HEADER)
    media_type = VTT_MEDIA_TYPE if is_vtt else _PLAIN_MEDIA_TYPE
    return Response(content=text, media_type=media_type, headers=CORS_HEADERS)


def _optional_int(request: Request, name: str) -> int | None:
    raw = (request.query_params.get(name) or "").strip()
    if not raw:
        return None
    if not raw.isdigit():
        raise SearchQueryError(f"{name} must be a non-negative integer")
    return int(raw)


@router.options("/subtitles/search")
async def subtitle_search_preflight() -> Response:
    return preflight_response()


@router.get("/subtitles/search")
async def subtitle_search(request: Request) -> Response:
    """Search OpenSubtitles; ``season`` with ``episode`` narrows to one episode."""
    state = cast(AppState, request.app.state)
    params = request.query_params
    imdb_id = (params.get("imdbId") or "").strip()
    language_id = (params.get("languageId") or "").strip() or DEFAULT_LANGUAGE
    if not imdb_id:
        return error_response(400, "imdbId parameter is required", headers=CORS_HEADERS)

    try:
        season = _optional_int(request, "season")
        episode = _optional_int(request, "episode")
        results = await state.subtitle_search.search(
            imdb_id, language_id, season, episode
        )
    except SearchQueryError as exc:
        return error_response(400, str(exc), headers=CORS_HEADERS)
    except (ChainError, httpx.HTTPError) as exc:
        log.warning(
            "subtitle_search_failed",
            imdb_id=imdb_id,
            error=type(exc).__name__,
            detail=str(exc)[:200],
        )
        return upstream_error_response(exc, headers=CORS_HEADERS)

    return JSONResponse(
        {
            "success": True,
            "subtitles": [candidate.to_dict() for candidate in results],
            "totalCount": len(results),
            "language": language_name(language_id),
            "source": "opensubtitles",
        },
        headers=CORS_HEADERS,
    )
