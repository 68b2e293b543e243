"""Hop-by-hop chain navigation.

One :meth:`ChainNavigator.resolve` call walks one candidate's topology once:
fetch the current URL, stop early if the content already is a playlist,
otherwise apply the stage's rule cascade to find the next URL.  Hops are
strictly sequential and the chain state only moves forward.  Nothing is
retried here: the first failure is classified into a ``FailureReport`` and
returned to the retry/fallback controller.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from streamhop.domain.entities.resolution import (
    ChainState,
    FailureClass,
    FailureReport,
    Fingerprint,
    HopResult,
    HopStage,
    ResolutionOutcome,
    ServerCandidate,
    Strategy,
    StreamDescriptor,
    SubtitleTrack,
)
from streamhop.domain.exceptions import (
    AntiBotChallengeError,
    ChainError,
    HopPatternNotFoundError,
    PayloadDecodeError,
)
from streamhop.domain.ports.browser_session import BrowserSessionPort
from streamhop.domain.ports.hop_fetcher import HopFetcherPort
from streamhop.infrastructure.codec.payload_codec import decode_manifest
from streamhop.infrastructure.evasion.challenge import has_challenge_markers
from streamhop.infrastructure.navigator.browser_fetcher import BrowserHopFetcher
from streamhop.infrastructure.navigator.http_fetcher import HttpHopFetcher
from streamhop.infrastructure.navigator.rules import (
    apply_rules,
    clean_tracking_url,
    extract_subtitle_tracks,
    is_direct_media_url,
    is_manifest_url,
)
from streamhop.infrastructure.navigator.topologies import (
    ChainTopology,
    TopologyRegistry,
)

log = structlog.get_logger(__name__)


class StrategyFetchers:
    """Opens the hop fetcher for a strategy.

    The fast strategy reuses the shared HTTP client; the full strategy holds
    one browser session for the whole invocation so every hop shares the
    same fingerprinted context.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        browser: BrowserSessionPort | None = None,
    ) -> None:
        self._client = client
        self._browser = browser

    @property
    def strategies(self) -> tuple[Strategy, ...]:
        if self._browser is None:
            return (Strategy.FAST,)
        return (Strategy.FAST, Strategy.FULL)

    @asynccontextmanager
    async def open(
        self, strategy: Strategy, fingerprint: Fingerprint
    ) -> AsyncIterator[HopFetcherPort]:
        if strategy is Strategy.FAST:
            yield HttpHopFetcher(self._client, fingerprint)
            return
        if self._browser is None:
            raise ValueError("full strategy requires browser automation")
        async with self._browser.session(fingerprint) as session:
            yield BrowserHopFetcher(session)


def _descriptor(
    url: str,
    topology: ChainTopology,
    tracks: list[SubtitleTrack],
    *,
    stream_type: str = "hls",
) -> StreamDescriptor:
    unique: dict[str, SubtitleTrack] = {}
    for track in tracks:
        unique.setdefault(track.url, track)
    return StreamDescriptor(
        stream_url=url,
        stream_type="direct" if stream_type == "direct" else "hls",
        requires_proxy=topology.requires_proxy,
        subtitle_tracks=tuple(unique.values()),
        server=topology.name,
    )


def _classify(exc: BaseException) -> FailureClass:
    if isinstance(exc, ChainError):
        return exc.failure_class
    timeouts = (httpx.TimeoutException, PlaywrightTimeoutError, asyncio.TimeoutError)
    if isinstance(exc, timeouts):
        return FailureClass.TIMEOUT
    return FailureClass.NETWORK_ERROR


class ChainNavigator:
    """``ChainNavigatorPort`` driven by a topology registry.

    Args:
        registry: Candidate name -> topology.
        fetchers: Opens the fetcher of a strategy.
    """

    def __init__(
        self, registry: TopologyRegistry, fetchers: StrategyFetchers
    ) -> None:
        self._registry = registry
        self._fetchers = fetchers

    @property
    def strategies(self) -> tuple[Strategy, ...]:
        return self._fetchers.strategies

    async def resolve(
        self,
        embed_url: str,
        strategy: Strategy,
        fingerprint: Fingerprint,
        *,
        candidate: ServerCandidate,
    ) -> ResolutionOutcome:
        topology = self._registry.get(candidate.name)
        state = ChainState()
        try:
            async with self._fetchers.open(strategy, fingerprint) as fetcher:
                return await self._walk(fetcher, topology, embed_url, state)
        except (
            ChainError,
            httpx.RequestError,
            PlaywrightError,
            asyncio.TimeoutError,
        ) as exc:
            failure_class = _classify(exc)
            hop = getattr(exc, "hop", None)
            if hop is None:
                hop = state.current_hop
            log.info(
                "chain_failed",
                candidate=candidate.name,
                strategy=strategy.value,
                hop=hop.name,
                failure_class=failure_class.value,
                error=str(exc)[:200],
            )
            # Raw exception text may embed hop URLs: it stays in the
            # debug-only detail.
            return FailureReport(
                failure_class=failure_class,
                hop=hop,
                message=failure_class.summary,
                detail=f"{' -> '.join(state.visited_urls)} "
                f"[{type(exc).__name__}: {exc}]".strip(),
            )

    async def _walk(
        self,
        fetcher: HopFetcherPort,
        topology: ChainTopology,
        embed_url: str,
        state: ChainState,
    ) -> StreamDescriptor:
        stages = topology.stages
        last = len(stages) - 1
        index = 0
        url = embed_url
        referer: str | None = None
        tracks: list[SubtitleTrack] = []

        # Each iteration either terminates or moves to a later stage.
        for _ in range(len(stages)):
            spec = stages[index]
            state.advance(spec.stage)
            state.visit(url)

            hop = await fetcher.fetch(url, referer=referer)
            log.debug(
                "hop_fetched",
                candidate=topology.name,
                hop=spec.stage.name,
                url=hop.url[:120],
                status=hop.status,
            )
            tracks.extend(extract_subtitle_tracks(hop.body, hop.url))

            if hop.is_manifest:
                return _descriptor(hop.url, topology, tracks)

            captured = [u for u in hop.captured if is_manifest_url(u)]
            if captured:
                log.debug("hop_manifest_captured", hop=spec.stage.name)
                return _descriptor(clean_tracking_url(captured[0]), topology, tracks)

            if index == last or (topology.manifest_key and is_manifest_url(hop.url)):
                self._ensure_decodable(hop, topology, spec.stage)
                return _descriptor(hop.url, topology, tracks)

            match = apply_rules(spec.rules, hop)
            if match is None:
                if has_challenge_markers(hop.body):
                    raise AntiBotChallengeError(
                        "challenge markup instead of hop content", hop=spec.stage
                    )
                raise HopPatternNotFoundError(
                    f"no extraction rule matched at {spec.stage.name}", hop=spec.stage
                )

            rule_name, next_url = match
            next_url = clean_tracking_url(next_url)
            log.debug(
                "hop_rule_matched",
                candidate=topology.name,
                hop=spec.stage.name,
                rule=rule_name,
                next_url=next_url[:120],
            )

            if is_direct_media_url(next_url) and not is_manifest_url(next_url):
                return _descriptor(next_url, topology, tracks, stream_type="direct")

            referer = hop.url
            url = next_url
            # A playlist reference skips straight to the manifest host.
            index = last if is_manifest_url(next_url) else index + 1

        raise HopPatternNotFoundError(
            "chain exhausted without a manifest", hop=state.current_hop
        )

    @staticmethod
    def _ensure_decodable(
        hop: HopResult, topology: ChainTopology, stage: HopStage
    ) -> None:
        """Raise unless the obfuscated terminal body decodes to a playlist.

        The decoded text is discarded: the proxy fetches the playlist afresh
        and decodes it there.
        """
        if topology.manifest_key is None:
            if has_challenge_markers(hop.body):
                raise AntiBotChallengeError(
                    "challenge markup at manifest host", hop=stage
                )
            raise HopPatternNotFoundError(
                "manifest host did not return a playlist", hop=stage
            )
        try:
            decode_manifest(hop.body, topology.manifest_key)
        except PayloadDecodeError as exc:
            exc.hop = stage
            raise
