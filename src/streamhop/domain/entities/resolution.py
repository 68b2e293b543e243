"""Domain entities for stream resolution.

Pure value objects without framework dependencies or I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Literal, Union

MediaType = Literal["movie", "series"]
StreamType = Literal["hls", "direct"]

MANIFEST_MARKER = "#EXTM3U"


def is_plain_manifest(body: str) -> bool:
    """Return True when *body* starts with the playlist marker."""
    return body.lstrip("\ufeff \t\r\n").startswith(MANIFEST_MARKER)


class HopStage(IntEnum):
    """Ordered positions in the resolution chain (higher = closer to the asset)."""

    EMBED = 0
    INTERMEDIATE_A = 1
    INTERMEDIATE_B = 2
    MANIFEST_HOST = 3


class Strategy(str, Enum):
    """Extraction mode used for one navigator invocation."""

    FAST = "fast"  # plain HTTP client
    FULL = "full"  # headless browser automation


class FailureClass(str, Enum):
    """Stable failure taxonomy surfaced to callers."""

    TIMEOUT = "Timeout"
    UPSTREAM_REJECTED = "UpstreamRejected"
    ANTI_BOT_CHALLENGE = "AntiBotChallenge"
    HOP_PATTERN_NOT_FOUND = "HopPatternNotFound"
    DECODE_ERROR = "DecodeError"
    NETWORK_ERROR = "NetworkError"

    @property
    def summary(self) -> str:
        """Short client-facing message; never contains upstream URLs."""
        return _FAILURE_SUMMARIES[self]


_FAILURE_SUMMARIES: dict[FailureClass, str] = {
    FailureClass.TIMEOUT: "upstream timed out",
    FailureClass.UPSTREAM_REJECTED: "upstream rejected the request",
    FailureClass.ANTI_BOT_CHALLENGE: "blocked by an anti-bot challenge",
    FailureClass.HOP_PATTERN_NOT_FOUND: "stream link not found on upstream page",
    FailureClass.DECODE_ERROR: "stream payload could not be decoded",
    FailureClass.NETWORK_ERROR: "upstream unreachable",
}


@dataclass(frozen=True)
class ExtractionRequest:
    """One external resolution request.

    ``season``/``episode`` are only meaningful for ``series``.
    """

    media_type: MediaType
    catalog_id: str
    season: int | None = None
    episode: int | None = None
    preferred_server: str | None = None


@dataclass(frozen=True)
class ServerCandidate:
    """An upstream provider the orchestrator may fall back to.

    Templates use ``{id}``, ``{season}`` and ``{episode}`` placeholders.
    """

    name: str
    url_template: str
    series_url_template: str | None = None

    def build_url(self, request: ExtractionRequest) -> str:
        """Build the embed URL for *request*."""
        if request.media_type == "series":
            template = self.series_url_template or self.url_template
        else:
            template = self.url_template
        return template.format(
            id=request.catalog_id,
            season=request.season if request.season is not None else "",
            episode=request.episode if request.episode is not None else "",
        )


@dataclass(frozen=True)
class HopResult:
    """Content produced by a single hop fetch (HTTP or browser driven).

    ``captured`` holds manifest URLs observed on the wire by browser
    automation while the hop was loading; plain HTTP fetches leave it empty.
    """

    url: str
    status: int
    content_type: str
    body: str
    captured: tuple[str, ...] = ()

    @property
    def is_manifest(self) -> bool:
        return is_plain_manifest(self.body)


@dataclass
class ChainState:
    """Mutable progress of one navigator invocation.

    Never shared between requests; only moves forward through the stages.
    """

    current_hop: HopStage = HopStage.EMBED
    visited_urls: list[str] = field(default_factory=list)
    attempts_by_failure_class: dict[FailureClass, int] = field(default_factory=dict)

    def advance(self, stage: HopStage) -> None:
        """Move to *stage*; staying on the current stage is allowed."""
        if stage < self.current_hop:
            raise ValueError(
                f"chain cannot move back from {self.current_hop.name} to {stage.name}"
            )
        self.current_hop = stage

    def visit(self, url: str) -> None:
        self.visited_urls.append(url)

    def record_failure(self, failure_class: FailureClass) -> int:
        count = self.attempts_by_failure_class.get(failure_class, 0) + 1
        self.attempts_by_failure_class[failure_class] = count
        return count


@dataclass(frozen=True)
class Fingerprint:
    """Synthetic browser identity, fixed for the lifetime of one invocation."""

    user_agent: str
    platform: str
    language: str
    hardware_concurrency: int
    device_memory: int
    screen_width: int
    screen_height: int
    timezone: str
    languages: tuple[str, ...] = ()
    webgl_vendor: str = "Google Inc."
    webgl_renderer: str = "ANGLE (Intel(R) UHD Graphics 630 Direct3D11 vs_5_0 ps_5_0)"
    color_depth: int = 24

    @property
    def viewport(self) -> dict[str, int]:
        # Browser chrome (tabs, taskbar) eats part of the physical screen.
        return {"width": self.screen_width, "height": self.screen_height - 120}

    @property
    def accept_language(self) -> str:
        langs = self.languages or (self.language,)
        parts = [langs[0]]
        for index, lang in enumerate(langs[1:], start=1):
            parts.append(f"{lang};q={max(0.1, 1 - index * 0.1):.1f}")
        return ",".join(parts)


@dataclass(frozen=True)
class SubtitleTrack:
    """A subtitle file discovered alongside a stream."""

    language: str
    url: str
    label: str = ""


@dataclass(frozen=True)
class StreamDescriptor:
    """Terminal success value of a resolution."""

    stream_url: str
    stream_type: StreamType
    requires_proxy: bool
    subtitle_tracks: tuple[SubtitleTrack, ...] = ()
    server: str = ""


@dataclass(frozen=True)
class FailureReport:
    """Terminal failure value of a resolution.

    ``detail`` carries diagnostics (visited URLs, upstream excerpts) that are
    only exposed when debug output is enabled.
    """

    failure_class: FailureClass
    hop: HopStage | None
    message: str
    detail: str = ""


ResolutionOutcome = Union[StreamDescriptor, FailureReport]


@dataclass(frozen=True)
class AttemptRecord:
    """One navigator invocation made by the retry/fallback controller."""

    candidate: str
    strategy: Strategy
    attempt: int
    failure_class: FailureClass | None = None

    @property
    def succeeded(self) -> bool:
        return self.failure_class is None

    @property
    def label(self) -> str:
        outcome = "success" if self.succeeded else "fail"
        return f"{self.candidate}/{self.strategy.value}({outcome})"


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification emitted while a request is being resolved."""

    phase: str
    progress: int
    message: str
    data: dict[str, Any] = field(default_factory=dict)
