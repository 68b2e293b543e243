"""Resolution endpoints: one-shot JSON and Server-Sent-Events progress."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Mapping
from dataclasses import asdict
from typing import Any, cast

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from streamhop.application.use_cases.resolve_stream import UnknownServerError
from streamhop.domain.entities.resolution import (
    AttemptRecord,
    ExtractionRequest,
    FailureReport,
    MediaType,
    ProgressEvent,
    StreamDescriptor,
)
from streamhop.infrastructure.proxy import proxy_link
from streamhop.interfaces.api.errors import (
    error_response,
    failure_response,
    truncate,
)
from streamhop.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["resolve"])

_MEDIA_TYPES: dict[str, MediaType] = {
    "movie": "movie",
    "series": "series",
    "tv": "series",
}

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class RequestParamError(ValueError):
    """Query parameters missing or malformed (HTTP 400)."""


def _positive_int(params: Mapping[str, str], name: str) -> int | None:
    raw = params.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise RequestParamError(f"{name} must be an integer") from None
    if value < 1:
        raise RequestParamError(f"{name} must be >= 1")
    return value


def parse_request(
    params: Mapping[str, str], *, default_server: str | None = None
) -> ExtractionRequest:
    """Build an ``ExtractionRequest`` from ``/resolve`` query parameters.

    Raises:
        RequestParamError: A parameter is missing or invalid.
    """
    raw_type = (params.get("mediaType") or "").strip().lower()
    if not raw_type:
        raise RequestParamError("mediaType is required")
    media_type = _MEDIA_TYPES.get(raw_type)
    if media_type is None:
        raise RequestParamError("mediaType must be 'movie' or 'series'")

    catalog_id = (params.get("catalogId") or "").strip()
    if not catalog_id:
        raise RequestParamError("catalogId is required")

    season = _positive_int(params, "season")
    episode = _positive_int(params, "episode")
    if media_type == "series" and (season is None or episode is None):
        raise RequestParamError("season and episode are required for series")

    server = (params.get("server") or "").strip() or default_server
    return ExtractionRequest(
        media_type=media_type,
        catalog_id=catalog_id,
        season=season if media_type == "series" else None,
        episode=episode if media_type == "series" else None,
        preferred_server=server,
    )


def descriptor_payload(
    descriptor: StreamDescriptor, *, proxy_base: str = ""
) -> dict[str, Any]:
    """JSON body of a successful resolution."""
    payload: dict[str, Any] = {
        "success": True,
        "streamUrl": descriptor.stream_url,
        "streamType": descriptor.stream_type,
        "requiresProxy": descriptor.requires_proxy,
        "subtitleTracks": [asdict(track) for track in descriptor.subtitle_tracks],
        "server": descriptor.server,
    }
    if descriptor.requires_proxy:
        kind = "manifest" if descriptor.stream_type == "hls" else "segment"
        payload["proxyUrl"] = proxy_link(
            descriptor.stream_url, kind, proxy_base, descriptor.server
        )
    return payload


def _debug_allowed(request: Request, state: AppState) -> bool:
    config = state.config
    if config.resolve_debug_errors:
        return True
    requested = request.query_params.get("debug") in {"1", "true"}
    return requested and config.environment == "dev"


def _debug_detail(report: FailureReport, attempts: list[AttemptRecord]) -> str:
    trail = ", ".join(a.label for a in attempts)
    return f"{report.detail} attempts=[{trail}]" if trail else report.detail


def _parse_or_400(request: Request, state: AppState) -> ExtractionRequest | Response:
    try:
        extraction = parse_request(
            request.query_params, default_server=state.config.resolve_default_server
        )
        # Fail fast on an unknown server before any work starts.
        state.resolve_uc.candidates_for(extraction)
    except (RequestParamError, UnknownServerError) as exc:
        log.info("resolve_bad_request", error=str(exc))
        return error_response(400, str(exc))
    return extraction


@router.get("/resolve")
async def resolve(request: Request) -> Response:
    """Resolve a catalog entry to a playable stream (JSON)."""
    state = cast(AppState, request.app.state)
    parsed = _parse_or_400(request, state)
    if isinstance(parsed, Response):
        return parsed

    attempts: list[AttemptRecord] = []
    outcome = await state.resolve_uc.execute(parsed, attempts=attempts)

    if isinstance(outcome, StreamDescriptor):
        return JSONResponse(
            descriptor_payload(outcome, proxy_base=state.config.proxy_public_base_url)
        )

    log.warning(
        "resolve_failed",
        failure_class=outcome.failure_class.value,
        attempts=[a.label for a in attempts],
    )
    include_debug = _debug_allowed(request, state)
    if include_debug:
        outcome = FailureReport(
            failure_class=outcome.failure_class,
            hop=outcome.hop,
            message=outcome.message,
            detail=_debug_detail(outcome, attempts),
        )
    return failure_response(outcome, include_debug=include_debug)


def sse_frame(payload: Mapping[str, Any]) -> str:
    return f"data: {json.dumps(payload, separators=(',', ':'))}\n\n"


def _event_payload(event: ProgressEvent) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "phase": event.phase,
        "progress": event.progress,
        "message": event.message,
    }
    if event.data:
        payload["data"] = event.data
    return payload


async def _progress_frames(
    request: Request, state: AppState, extraction: ExtractionRequest
) -> AsyncIterator[str]:
    """Yield SSE frames until the terminal ``complete``/``error`` frame.

    Closing the generator (client disconnect) cancels the resolution, which
    tears down any open browser session.
    """
    queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
    attempts: list[AttemptRecord] = []

    yield sse_frame(
        {"phase": "initializing", "progress": 5, "message": "Preparing extraction"}
    )

    task = asyncio.create_task(
        state.resolve_uc.execute(extraction, attempts=attempts, progress=queue.put)
    )
    getter: asyncio.Future[ProgressEvent] | None = None
    try:
        while not task.done():
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait(
                {getter, task}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter in done:
                yield sse_frame(_event_payload(getter.result()))
            else:
                getter.cancel()
            getter = None
        while not queue.empty():
            yield sse_frame(_event_payload(queue.get_nowait()))

        try:
            outcome = task.result()
        except Exception:  # noqa: BLE001
            log.exception("resolve_stream_crashed")
            yield sse_frame(
                {"phase": "error", "progress": 100, "message": "internal error"}
            )
            return

        if isinstance(outcome, StreamDescriptor):
            yield sse_frame(
                {
                    "phase": "complete",
                    "progress": 100,
                    "message": f"Stream resolved via {outcome.server}",
                    "result": descriptor_payload(
                        outcome, proxy_base=state.config.proxy_public_base_url
                    ),
                }
            )
            return

        frame: dict[str, Any] = {
            "phase": "error",
            "progress": 100,
            "message": outcome.message,
            "class": outcome.failure_class.value,
        }
        if _debug_allowed(request, state):
            frame["debug"] = truncate(_debug_detail(outcome, attempts))
        yield sse_frame(frame)
    finally:
        if getter is not None:
            getter.cancel()
        if not task.done():
            task.cancel()
            log.info("resolve_stream_cancelled", attempts=len(attempts))


@router.get("/resolve/stream")
async def resolve_stream(request: Request) -> Response:
    """Resolve with progress reported as Server-Sent Events."""
    state = cast(AppState, request.app.state)
    parsed = _parse_or_400(request, state)
    if isinstance(parsed, Response):
        return parsed
    return StreamingResponse(
        _progress_frames(request, state, parsed),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
