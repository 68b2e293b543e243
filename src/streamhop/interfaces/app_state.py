"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from streamhop.infrastructure.config import AppConfig

if TYPE_CHECKING:
    from streamhop.application.use_cases.resolve_stream import ResolveStreamUseCase
    from streamhop.infrastructure.common import RequestThrottler
    from streamhop.infrastructure.evasion import AntiBotEvasionEngine
    from streamhop.infrastructure.proxy import StreamProxy, SubtitleSearch


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration
    config: AppConfig

    # Infrastructure (shared process-wide)
    throttler: RequestThrottler
    http_client: httpx.AsyncClient
    proxy_client: httpx.AsyncClient

    # Browser automation (None when playwright.enabled is false)
    evasion_engine: AntiBotEvasionEngine | None

    # Application services
    resolve_uc: ResolveStreamUseCase
    stream_proxy: StreamProxy
    subtitle_search: SubtitleSearch

    # Readiness (set once lifespan startup completes)
    ready: bool
