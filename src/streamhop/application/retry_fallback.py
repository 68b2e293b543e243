"""Recovery policy around single navigator invocations.

The navigator never retries; this controller owns every recovery decision::

    FAST --(AntiBotChallenge | HopPatternNotFound)--> FULL
      |                                                |
      +--(Timeout | NetworkError, < ceiling)--> retry same strategy (backoff)
      |
      +--(DecodeError | UpstreamRejected | ceiling hit | no stronger strategy)
                                                --> next candidate

Failure counters are keyed by ``(candidate, failure class)`` and live only
for one :meth:`RetryFallbackController.execute` call.  Every navigator
invocation gets a freshly generated fingerprint and its own chain state.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog

from streamhop.domain.entities.resolution import (
    AttemptRecord,
    ExtractionRequest,
    FailureClass,
    FailureReport,
    Fingerprint,
    ProgressEvent,
    ResolutionOutcome,
    ServerCandidate,
    StreamDescriptor,
)
from streamhop.domain.ports.navigator import ChainNavigatorPort

log = structlog.get_logger(__name__)

ProgressCallback = Callable[[ProgressEvent], Any]

TRANSIENT_CLASSES = frozenset({FailureClass.TIMEOUT, FailureClass.NETWORK_ERROR})
ESCALATING_CLASSES = frozenset(
    {FailureClass.ANTI_BOT_CHALLENGE, FailureClass.HOP_PATTERN_NOT_FOUND}
)


class Decision(enum.Enum):
    RETRY = "retry"
    ESCALATE = "escalate"
    NEXT_CANDIDATE = "next_candidate"


def decide(
    failure_class: FailureClass,
    count: int,
    *,
    max_transient_attempts: int,
    can_escalate: bool,
) -> Decision:
    """Pure policy: what to do after the *count*-th failure of a class."""
    if failure_class in TRANSIENT_CLASSES:
        if count < max_transient_attempts:
            return Decision.RETRY
        return Decision.NEXT_CANDIDATE
    if failure_class in ESCALATING_CLASSES and can_escalate:
        return Decision.ESCALATE
    return Decision.NEXT_CANDIDATE


async def emit(progress: ProgressCallback | None, event: ProgressEvent) -> None:
    """Deliver *event* to a sync or async progress callback."""
    if progress is None:
        return
    result = progress(event)
    if inspect.isawaitable(result):
        await result


class RetryFallbackController:
    """Drives the navigator across strategies and server candidates.

    Args:
        navigator: Resolves one embed URL once.
        fingerprints: Produces a fresh fingerprint per invocation.
        max_transient_attempts: Attempts per ``(candidate, transient class)``.
        backoff_base: First backoff delay in seconds (doubles per retry).
        max_backoff: Backoff ceiling in seconds.
        sleep: Awaitable sleep (tests pass a recorder).
        rng: Jitter source.
    """

    def __init__(
        self,
        navigator: ChainNavigatorPort,
        fingerprints: Callable[[], Fingerprint],
        *,
        max_transient_attempts: int = 3,
        backoff_base: float = 0.5,
        max_backoff: float = 8.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if max_transient_attempts < 1:
            raise ValueError("max_transient_attempts must be >= 1")
        self._navigator = navigator
        self._fingerprints = fingerprints
        self._max_transient = max_transient_attempts
        self._backoff_base = backoff_base
        self._max_backoff = max_backoff
        self._sleep = sleep
        self._rng = rng or random.Random()

    def backoff(self, retry: int) -> float:
        """Delay before the *retry*-th in-place retry (1-based)."""
        delay = self._backoff_base * (2 ** (retry - 1))
        jitter = self._rng.uniform(0, self._backoff_base)  # noqa: S311
        return min(delay + jitter, self._max_backoff)

    async def execute(
        self,
        candidates: Sequence[ServerCandidate],
        request: ExtractionRequest,
        *,
        attempts: list[AttemptRecord] | None = None,
        progress: ProgressCallback | None = None,
    ) -> ResolutionOutcome:
        """Resolve *request* against *candidates* front to back.

        Args:
            candidates: Ordered fallback list (must not be empty).
            request: The external request.
            attempts: Optional list receiving one ``AttemptRecord`` per
                navigator invocation, in order.
            progress: Optional callback receiving ``ProgressEvent``\\ s.
        """
        if not candidates:
            raise ValueError("at least one server candidate is required")

        record = attempts if attempts is not None else []
        counters: dict[tuple[str, FailureClass], int] = {}
        strategies = self._navigator.strategies
        last_failure: FailureReport | None = None

        for candidate in candidates:
            embed_url = candidate.build_url(request)
            strategy_index = 0
            attempt = 0

            while True:
                strategy = strategies[strategy_index]
                attempt += 1
                await emit(
                    progress,
                    ProgressEvent(
                        phase="navigating",
                        progress=min(90, 25 + 10 * len(record)),
                        message=f"Trying {candidate.name} ({strategy.value})",
                        data={
                            "candidate": candidate.name,
                            "strategy": strategy.value,
                            "attempt": attempt,
                        },
                    ),
                )

                outcome = await self._navigator.resolve(
                    embed_url,
                    strategy,
                    self._fingerprints(),
                    candidate=candidate,
                )

                if isinstance(outcome, StreamDescriptor):
                    record.append(AttemptRecord(candidate.name, strategy, attempt))
                    log.info(
                        "resolution_succeeded",
                        candidate=candidate.name,
                        strategy=strategy.value,
                        attempts=len(record),
                    )
                    await emit(
                        progress,
                        ProgressEvent(
                            phase="extracting",
                            progress=95,
                            message=f"Stream found on {candidate.name}",
                            data={
                                "candidate": candidate.name,
                                "strategy": strategy.value,
                            },
                        ),
                    )
                    return outcome

                failure_class = outcome.failure_class
                record.append(
                    AttemptRecord(candidate.name, strategy, attempt, failure_class)
                )
                last_failure = outcome
                key = (candidate.name, failure_class)
                counters[key] = counters.get(key, 0) + 1

                decision = decide(
                    failure_class,
                    counters[key],
                    max_transient_attempts=self._max_transient,
                    can_escalate=strategy_index + 1 < len(strategies),
                )
                log.info(
                    "attempt_failed",
                    candidate=candidate.name,
                    strategy=strategy.value,
                    failure_class=failure_class.value,
                    count=counters[key],
                    decision=decision.value,
                )

                if decision is Decision.RETRY:
                    await self._sleep(self.backoff(counters[key]))
                    continue
                if decision is Decision.ESCALATE:
                    strategy_index += 1
                    log.info(
                        "strategy_escalated",
                        candidate=candidate.name,
                        strategy=strategies[strategy_index].value,
                    )
                    continue
                log.info("candidate_exhausted", candidate=candidate.name)
                break

        if last_failure is None:
            raise RuntimeError("no navigator attempt was recorded")
        log.warning(
            "all_candidates_exhausted",
            attempts=[a.label for a in record],
            failure_class=last_failure.failure_class.value,
        )
        return FailureReport(
            failure_class=last_failure.failure_class,
            hop=last_failure.hop,
            message=(
                "all server candidates exhausted: "
                f"{last_failure.failure_class.summary}"
            ),
            detail="; ".join(
                [a.label for a in record]
                + ([last_failure.detail] if last_failure.detail else [])
            ),
        )
