"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

import structlog
from fastapi import FastAPI

from streamhop.application.retry_fallback import RetryFallbackController
from streamhop.application.use_cases.resolve_stream import ResolveStreamUseCase
from streamhop.infrastructure.common import RequestThrottler, build_client
from streamhop.infrastructure.config.schema import AppConfig
from streamhop.infrastructure.evasion import AntiBotEvasionEngine
from streamhop.infrastructure.fingerprint import FingerprintPool
from streamhop.infrastructure.navigator import (
    ChainNavigator,
    StrategyFetchers,
    default_registry,
)
from streamhop.infrastructure.proxy import StreamProxy, SubtitleSearch
from streamhop.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


def _build_throttler(config: AppConfig) -> RequestThrottler:
    return RequestThrottler(
        burst_limit=config.throttle_burst_limit,
        window_seconds=config.throttle_window_seconds,
        min_delay_ms=config.throttle_min_delay_ms,
        max_delay_ms=config.throttle_max_delay_ms,
    )


def _build_engine(
    config: AppConfig, throttler: RequestThrottler
) -> AntiBotEvasionEngine | None:
    if not config.playwright_enabled:
        return None
    return AntiBotEvasionEngine(
        headless=config.playwright_headless,
        timeout_ms=config.playwright_timeout_ms,
        max_sessions=config.playwright_max_sessions,
        settle_seconds=config.playwright_settle_seconds,
        throttler=throttler,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan Hook: Initialize and cleanup all resources (DI Composition Root).

    Order matters:
        1. Throttler (shared by every outbound path)
        2. HTTP clients (hop client with jitter, proxy client without)
        3. Evasion engine (browser launched lazily on first session)
        4. Navigator + retry/fallback controller + resolve use case
        5. Stream proxy
    """
    state = cast(AppState, app.state)
    config = state.config
    state.ready = False

    # 1) Throttler
    state.throttler = _build_throttler(config)
    log.info(
        "throttler_initialized",
        burst_limit=config.throttle_burst_limit,
        window_seconds=config.throttle_window_seconds,
    )

    # 2) HTTP clients
    state.http_client = build_client(
        state.throttler,
        timeout=config.http_timeout_seconds,
        follow_redirects=config.http_follow_redirects,
    )
    # Segment fetches are latency-sensitive: counted, never jittered.
    state.proxy_client = build_client(
        state.throttler,
        timeout=config.proxy_timeout_seconds,
        follow_redirects=True,
        jitter=False,
    )
    log.info("http_clients_initialized", timeout=config.http_timeout_seconds)

    # 3) Evasion engine
    state.evasion_engine = _build_engine(config, state.throttler)
    log.info(
        "evasion_engine_configured",
        enabled=state.evasion_engine is not None,
        max_sessions=config.playwright_max_sessions,
    )

    # 4) Resolution pipeline
    registry = default_registry()
    navigator = ChainNavigator(
        registry,
        StrategyFetchers(state.http_client, state.evasion_engine),
    )
    controller = RetryFallbackController(
        navigator,
        FingerprintPool().generate,
        max_transient_attempts=config.resolve_max_transient_attempts,
        backoff_base=config.resolve_backoff_base,
        max_backoff=config.resolve_max_backoff,
    )
    candidates = registry.candidates(config.resolve_candidates)
    state.resolve_uc = ResolveStreamUseCase(
        controller,
        candidates,
        request_timeout=config.resolve_request_timeout_seconds,
    )
    log.info(
        "resolve_pipeline_initialized",
        candidates=state.resolve_uc.candidate_names,
        strategies=[s.value for s in navigator.strategies],
    )

    # 5) Stream proxy
    state.stream_proxy = StreamProxy(
        state.proxy_client,
        user_agent=config.http_user_agent,
        proxy_base=config.proxy_public_base_url,
        chunk_size=config.proxy_chunk_size,
        header_profiles=registry.proxy_headers(),
    )
    state.subtitle_search = SubtitleSearch(state.http_client)

    state.ready = True
    log.info("app_startup_complete")

    try:
        yield
    finally:
        state.ready = False

        if state.evasion_engine is not None:
            await state.evasion_engine.cleanup()
            log.info("evasion_engine_cleaned_up")

        await state.proxy_client.aclose()
        await state.http_client.aclose()
        log.info("http_clients_closed")

        log.info("app_shutdown_complete")
