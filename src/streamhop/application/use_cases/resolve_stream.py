"""Resolve stream use case (request orchestration).

ExtractionRequest -> ordered server candidates -> retry/fallback controller
under an aggregate time budget -> StreamDescriptor | FailureReport.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Protocol

import structlog

from streamhop.application.retry_fallback import ProgressCallback, emit
from streamhop.domain.entities.resolution import (
    AttemptRecord,
    ExtractionRequest,
    FailureClass,
    FailureReport,
    ProgressEvent,
    ResolutionOutcome,
    ServerCandidate,
)

log = structlog.get_logger(__name__)


class _Controller(Protocol):
    async def execute(
        self,
        candidates: Sequence[ServerCandidate],
        request: ExtractionRequest,
        *,
        attempts: list[AttemptRecord] | None = None,
        progress: ProgressCallback | None = None,
    ) -> ResolutionOutcome: ...


class UnknownServerError(ValueError):
    """The requested preferred server is not a configured candidate."""


class ResolveStreamUseCase:
    """Entry point of a resolution.

    Args:
        controller: Retry/fallback controller.
        candidates: Configured candidates in default order.
        request_timeout: Aggregate budget in seconds; when it runs out the
            outstanding work is cancelled (closing any browser session) and
            a ``Timeout`` failure is returned.
    """

    def __init__(
        self,
        controller: _Controller,
        candidates: Sequence[ServerCandidate],
        *,
        request_timeout: float,
    ) -> None:
        if not candidates:
            raise ValueError("at least one server candidate is required")
        self._controller = controller
        self._candidates = list(candidates)
        self._request_timeout = request_timeout

    @property
    def candidate_names(self) -> list[str]:
        return [c.name for c in self._candidates]

    def candidates_for(self, request: ExtractionRequest) -> list[ServerCandidate]:
        """Default order with the preferred server (if any) moved first."""
        preferred = request.preferred_server
        if not preferred:
            return list(self._candidates)
        first = [c for c in self._candidates if c.name == preferred]
        if not first:
            raise UnknownServerError(f"unknown server {preferred!r}")
        return first + [c for c in self._candidates if c.name != preferred]

    async def execute(
        self,
        request: ExtractionRequest,
        *,
        attempts: list[AttemptRecord] | None = None,
        progress: ProgressCallback | None = None,
    ) -> ResolutionOutcome:
        candidates = self.candidates_for(request)
        log.info(
            "resolve_started",
            media_type=request.media_type,
            catalog_id=request.catalog_id,
            season=request.season,
            episode=request.episode,
            candidates=[c.name for c in candidates],
        )
        await emit(
            progress,
            ProgressEvent(
                phase="connecting",
                progress=15,
                message="Connecting to stream servers",
                data={"candidates": [c.name for c in candidates]},
            ),
        )

        try:
            return await asyncio.wait_for(
                self._controller.execute(
                    candidates, request, attempts=attempts, progress=progress
                ),
                timeout=self._request_timeout,
            )
        except asyncio.TimeoutError:
            log.warning("resolve_budget_exceeded", budget=self._request_timeout)
            return FailureReport(
                failure_class=FailureClass.TIMEOUT,
                hop=None,
                message="request budget exceeded",
                detail=f"budget {self._request_timeout}s",
            )
