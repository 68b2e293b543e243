"""Port for the chain navigator consumed by the retry/fallback controller."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from streamhop.domain.entities.resolution import (
    Fingerprint,
    ResolutionOutcome,
    ServerCandidate,
    Strategy,
)


@runtime_checkable
class ChainNavigatorPort(Protocol):
    """Walks a provider's hop chain from an embed URL to a stream."""

    @property
    def strategies(self) -> tuple[Strategy, ...]:
        """Strategies this navigator can run, cheapest first."""
        ...

    async def resolve(
        self,
        embed_url: str,
        strategy: Strategy,
        fingerprint: Fingerprint,
        *,
        candidate: ServerCandidate,
    ) -> ResolutionOutcome:
        """Resolve *embed_url* once, without retrying.

        Returns a ``StreamDescriptor`` on success or a ``FailureReport``
        classifying the first failing hop.
        """
        ...
