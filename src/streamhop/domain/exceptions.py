"""Resolution chain exceptions.

Each exception carries the failure class it maps to, so the navigator can
classify it without isinstance ladders.
"""

from __future__ import annotations

from streamhop.domain.entities.resolution import FailureClass, HopStage


class ChainError(Exception):
    """Base class for classified resolution failures."""

    failure_class: FailureClass = FailureClass.NETWORK_ERROR

    def __init__(self, message: str, *, hop: HopStage | None = None) -> None:
        super().__init__(message)
        self.hop = hop


class UpstreamRejectedError(ChainError):
    """Upstream answered with a non-2xx status."""

    failure_class = FailureClass.UPSTREAM_REJECTED

    def __init__(
        self, status_code: int, url: str, *, hop: HopStage | None = None
    ) -> None:
        super().__init__(f"upstream returned HTTP {status_code}", hop=hop)
        self.status_code = status_code
        self.url = url


class AntiBotChallengeError(ChainError):
    """A bot challenge or frame-ancestry check blocked the hop."""

    failure_class = FailureClass.ANTI_BOT_CHALLENGE


class HopPatternNotFoundError(ChainError):
    """No extraction rule matched the hop content."""

    failure_class = FailureClass.HOP_PATTERN_NOT_FOUND


class PayloadDecodeError(ChainError):
    """A cryptographic transform failed or produced non-manifest output."""

    failure_class = FailureClass.DECODE_ERROR
