"""Tests for ChainNavigator hop walking and failure classification."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

import httpx
import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from streamhop.domain.entities.resolution import (
    FailureClass,
    FailureReport,
    Fingerprint,
    HopResult,
    HopStage,
    ServerCandidate,
    Strategy,
    StreamDescriptor,
)
from streamhop.domain.exceptions import UpstreamRejectedError
from streamhop.infrastructure.codec import encode_manifest
from streamhop.infrastructure.navigator import (
    ChainNavigator,
    HttpHopFetcher,
    StrategyFetchers,
    default_registry,
)

_PLAYLIST = "#EXTM3U\n#EXT-X-STREAM-INF:BANDWIDTH=800000\nlow/index.m3u8\n"

_XYZ_EMBED = "https://vidsrc.xyz/embed/movie/tt0133093/"
_XYZ_RCP = "https://cloudnestra.com/rcp/QUJDREVG"
_XYZ_PRORCP = "https://cloudnestra.com/prorcp/WFlaMTIz"
_XYZ_MASTER = "https://tmstr2.shadowlandschronicles.com/pl/H4sI/master.m3u8"


class _ScriptedFetcher:
    """Answers hop URLs from a table; values are bodies, HopResults or errors."""

    def __init__(self, routes: dict[str, object]) -> None:
        self._routes = routes
        self.calls: list[tuple[str, str | None]] = []

    def _lookup(self, url: str) -> object:
        if url in self._routes:
            return self._routes[url]
        for prefix, value in self._routes.items():
            if url.startswith(prefix):
                return value
        return "<html>not found</html>"

    async def fetch(self, url: str, *, referer: str | None = None) -> HopResult:
        self.calls.append((url, referer))
        value = self._lookup(url)
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, HopResult):
            return value
        return HopResult(url=url, status=200, content_type="text/html", body=value)


class _ScriptedFetchers:
    def __init__(self, fetcher: _ScriptedFetcher) -> None:
        self.fetcher = fetcher
        self.opened: list[Strategy] = []

    @property
    def strategies(self) -> tuple[Strategy, ...]:
        return (Strategy.FAST, Strategy.FULL)

    @asynccontextmanager
    async def open(
        self, strategy: Strategy, fingerprint: Fingerprint
    ) -> AsyncIterator[_ScriptedFetcher]:
        self.opened.append(strategy)
        yield self.fetcher


def _navigator(routes: dict[str, object]) -> tuple[ChainNavigator, _ScriptedFetcher]:
    fetcher = _ScriptedFetcher(routes)
    return ChainNavigator(default_registry(), _ScriptedFetchers(fetcher)), fetcher


def _candidate(name: str) -> ServerCandidate:
    return default_registry().get(name).candidate


def _xyz_routes() -> dict[str, object]:
    return {
        _XYZ_EMBED: '<iframe id="player_iframe" src="//cloudnestra.com/rcp/QUJDREVG">',
        _XYZ_RCP: (
            "$('<iframe>', {id: 'player_iframe', src: '/prorcp/WFlaMTIz',"
            " frameborder: 0}).appendTo('body');"
        ),
        _XYZ_PRORCP: f'var player = new Playerjs({{id: "p", file: "{_XYZ_MASTER}"}});',
        _XYZ_MASTER: _PLAYLIST,
    }


async def _resolve(
    navigator: ChainNavigator,
    url: str,
    fingerprint: Fingerprint,
    name: str = "vidsrc.xyz",
) -> StreamDescriptor | FailureReport:
    return await navigator.resolve(
        url, Strategy.FAST, fingerprint, candidate=_candidate(name)
    )


# ---------------------------------------------------------------------------
# Successful chains
# ---------------------------------------------------------------------------


class TestSuccessfulChains:
    async def test_vidsrc_xyz_full_chain(self, fingerprint: Fingerprint) -> None:
        navigator, fetcher = _navigator(_xyz_routes())

        outcome = await _resolve(navigator, _XYZ_EMBED, fingerprint)

        assert isinstance(outcome, StreamDescriptor)
        assert outcome.stream_url == _XYZ_MASTER
        assert outcome.stream_type == "hls"
        assert outcome.requires_proxy is True
        assert outcome.server == "vidsrc.xyz"
        assert [url for url, _ in fetcher.calls] == [
            _XYZ_EMBED,
            _XYZ_RCP,
            _XYZ_PRORCP,
            _XYZ_MASTER,
        ]

    async def test_each_hop_sends_previous_url_as_referer(
        self, fingerprint: Fingerprint
    ) -> None:
        navigator, fetcher = _navigator(_xyz_routes())

        await _resolve(navigator, _XYZ_EMBED, fingerprint)

        assert [ref for _, ref in fetcher.calls] == [
            None,
            _XYZ_EMBED,
            _XYZ_RCP,
            _XYZ_PRORCP,
        ]

    async def test_playlist_body_terminates_early(
        self, fingerprint: Fingerprint
    ) -> None:
        navigator, fetcher = _navigator({_XYZ_EMBED: _PLAYLIST})

        outcome = await _resolve(navigator, _XYZ_EMBED, fingerprint)

        assert isinstance(outcome, StreamDescriptor)
        assert outcome.stream_url == _XYZ_EMBED
        assert len(fetcher.calls) == 1

    async def test_captured_manifest_terminates_early(
        self, fingerprint: Fingerprint
    ) -> None:
        captured = "https://cdn.example/hls/master.m3u8?token=1"
        hop = HopResult(
            url=_XYZ_EMBED,
            status=200,
            content_type="text/html",
            body="<html>player</html>",
            captured=("https://cdn.example/thumb.jpg", captured),
        )
        navigator, _ = _navigator({_XYZ_EMBED: hop})

        outcome = await _resolve(navigator, _XYZ_EMBED, fingerprint)

        assert isinstance(outcome, StreamDescriptor)
        assert outcome.stream_url == captured

    async def test_playlist_reference_skips_to_manifest_host(
        self, fingerprint: Fingerprint
    ) -> None:
        master = "https://cdn.example/hls/master.m3u8"
        navigator, fetcher = _navigator(
            {
                "https://embed.su/embed/movie/tt0133093": (
                    f'jwplayer("p").setup({{file: "{master}"}});'
                ),
                master: _PLAYLIST,
            }
        )

        outcome = await _resolve(
            navigator, "https://embed.su/embed/movie/tt0133093", fingerprint, "embed.su"
        )

        assert isinstance(outcome, StreamDescriptor)
        assert outcome.stream_url == master
        assert len(fetcher.calls) == 2

    async def test_mp4_reference_is_direct(self, fingerprint: Fingerprint) -> None:
        navigator, _ = _navigator(
            {
                "https://embed.su/embed/movie/tt0133093": (
                    '<iframe src="https://cdn.example/files/movie.mp4"></iframe>'
                )
            }
        )

        outcome = await _resolve(
            navigator, "https://embed.su/embed/movie/tt0133093", fingerprint, "embed.su"
        )

        assert isinstance(outcome, StreamDescriptor)
        assert outcome.stream_type == "direct"
        assert outcome.stream_url == "https://cdn.example/files/movie.mp4"


# ---------------------------------------------------------------------------
# vidsrc.cc: API hops plus obfuscated playlist
# ---------------------------------------------------------------------------


class TestVidsrcCcChain:
    _EMBED = "https://vidsrc.cc/v2/embed/movie/tt0133093"
    _MASTER = "https://cdn.example/enc/master.m3u8"

    def _routes(self, manifest_body: str) -> dict[str, object]:
        return {
            self._EMBED: (
                '<script>var userId = "u-1"; var v = "djE="; '
                'var imdbId = "tt0133093";</script>'
            ),
            "https://vidsrc.cc/api/tt0133093/servers": json.dumps(
                {"data": [{"name": "VidPlay", "hash": "H1"}]}
            ),
            "https://vidsrc.cc/api/source/H1": json.dumps(
                {
                    "data": {
                        "source": self._MASTER,
                        "subtitles": [
                            {"label": "English", "lang": "en", "file": "/s/en.vtt"},
                            {"label": "English", "lang": "en", "file": "/s/en.vtt"},
                        ],
                    }
                }
            ),
            self._MASTER: manifest_body,
        }

    async def test_decodes_obfuscated_playlist(
        self, fingerprint: Fingerprint
    ) -> None:
        navigator, fetcher = _navigator(self._routes(encode_manifest(_PLAYLIST)))

        outcome = await _resolve(navigator, self._EMBED, fingerprint, "vidsrc.cc")

        assert isinstance(outcome, StreamDescriptor)
        assert outcome.stream_url == self._MASTER
        assert outcome.server == "vidsrc.cc"
        assert len(fetcher.calls) == 4
        assert [t.url for t in outcome.subtitle_tracks] == [
            "https://vidsrc.cc/s/en.vtt"
        ]

    async def test_garbage_payload_is_decode_error(
        self, fingerprint: Fingerprint
    ) -> None:
        navigator, _ = _navigator(self._routes("@@@ not a payload @@@"))

        outcome = await _resolve(navigator, self._EMBED, fingerprint, "vidsrc.cc")

        assert isinstance(outcome, FailureReport)
        assert outcome.failure_class is FailureClass.DECODE_ERROR
        assert outcome.hop is HopStage.MANIFEST_HOST


# ---------------------------------------------------------------------------
# Failure classification
# ---------------------------------------------------------------------------


class TestFailureClassification:
    async def test_no_rule_matches(self, fingerprint: Fingerprint) -> None:
        navigator, _ = _navigator({_XYZ_EMBED: "<html><p>gone</p></html>"})

        outcome = await _resolve(navigator, _XYZ_EMBED, fingerprint)

        assert isinstance(outcome, FailureReport)
        assert outcome.failure_class is FailureClass.HOP_PATTERN_NOT_FOUND
        assert outcome.hop is HopStage.EMBED
        assert outcome.detail.startswith(f"{_XYZ_EMBED} [HopPatternNotFoundError:")
        assert outcome.message == "stream link not found on upstream page"

    async def test_challenge_markup_is_anti_bot(
        self, fingerprint: Fingerprint
    ) -> None:
        routes = _xyz_routes()
        routes[_XYZ_RCP] = "<title>Just a moment...</title><div id='cf-turnstile'>"
        navigator, _ = _navigator(routes)

        outcome = await _resolve(navigator, _XYZ_EMBED, fingerprint)

        assert isinstance(outcome, FailureReport)
        assert outcome.failure_class is FailureClass.ANTI_BOT_CHALLENGE
        assert outcome.hop is HopStage.INTERMEDIATE_A
        assert outcome.detail.startswith(f"{_XYZ_EMBED} -> {_XYZ_RCP} [")

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (httpx.ConnectTimeout("timed out"), FailureClass.TIMEOUT),
            (httpx.ReadTimeout("timed out"), FailureClass.TIMEOUT),
            (PlaywrightTimeoutError("Timeout 30000ms exceeded"), FailureClass.TIMEOUT),
            (httpx.ConnectError("refused"), FailureClass.NETWORK_ERROR),
            (
                UpstreamRejectedError(404, _XYZ_PRORCP),
                FailureClass.UPSTREAM_REJECTED,
            ),
        ],
    )
    async def test_fetch_errors_are_classified_at_current_hop(
        self,
        fingerprint: Fingerprint,
        error: BaseException,
        expected: FailureClass,
    ) -> None:
        routes = _xyz_routes()
        routes[_XYZ_PRORCP] = error
        navigator, _ = _navigator(routes)

        outcome = await _resolve(navigator, _XYZ_EMBED, fingerprint)

        assert isinstance(outcome, FailureReport)
        assert outcome.failure_class is expected
        assert outcome.hop is HopStage.INTERMEDIATE_B

    async def test_error_text_stays_out_of_message(
        self, fingerprint: Fingerprint
    ) -> None:
        routes = _xyz_routes()
        routes[_XYZ_PRORCP] = PlaywrightError(
            f"Page.goto: net::ERR_ABORTED at {_XYZ_PRORCP}"
        )
        navigator, _ = _navigator(routes)

        outcome = await _resolve(navigator, _XYZ_EMBED, fingerprint)

        assert isinstance(outcome, FailureReport)
        assert outcome.failure_class is FailureClass.NETWORK_ERROR
        assert outcome.message == "upstream unreachable"
        assert "http" not in outcome.message
        assert f"ERR_ABORTED at {_XYZ_PRORCP}" in outcome.detail

    async def test_terminal_non_playlist_without_key(
        self, fingerprint: Fingerprint
    ) -> None:
        master = "https://cdn.example/hls/master.m3u8"
        navigator, _ = _navigator(
            {
                "https://embed.su/embed/movie/tt0133093": (
                    '<iframe src="https://player.example/v/1"></iframe>'
                ),
                "https://player.example/v/1": f"sources: [{{file: '{master}'}}]",
                master: "<html>expired</html>",
            }
        )

        outcome = await _resolve(
            navigator, "https://embed.su/embed/movie/tt0133093", fingerprint, "embed.su"
        )

        assert isinstance(outcome, FailureReport)
        assert outcome.failure_class is FailureClass.HOP_PATTERN_NOT_FOUND
        assert outcome.hop is HopStage.MANIFEST_HOST

    async def test_unknown_candidate_raises(self, fingerprint: Fingerprint) -> None:
        navigator, _ = _navigator({})
        with pytest.raises(KeyError):
            await navigator.resolve(
                "https://x.example/",
                Strategy.FAST,
                fingerprint,
                candidate=ServerCandidate("x.example", "https://x.example/{id}"),
            )


# ---------------------------------------------------------------------------
# StrategyFetchers
# ---------------------------------------------------------------------------


class TestStrategyFetchers:
    def test_fast_only_without_browser(self) -> None:
        fetchers = StrategyFetchers(MagicMock(spec=httpx.AsyncClient))
        assert fetchers.strategies == (Strategy.FAST,)

    def test_full_available_with_browser(self) -> None:
        fetchers = StrategyFetchers(MagicMock(spec=httpx.AsyncClient), MagicMock())
        assert fetchers.strategies == (Strategy.FAST, Strategy.FULL)

    async def test_fast_opens_http_fetcher(self, fingerprint: Fingerprint) -> None:
        fetchers = StrategyFetchers(MagicMock(spec=httpx.AsyncClient))
        async with fetchers.open(Strategy.FAST, fingerprint) as fetcher:
            assert isinstance(fetcher, HttpHopFetcher)

    async def test_full_without_browser_raises(
        self, fingerprint: Fingerprint
    ) -> None:
        fetchers = StrategyFetchers(MagicMock(spec=httpx.AsyncClient))
        with pytest.raises(ValueError, match="browser"):
            async with fetchers.open(Strategy.FULL, fingerprint):
                pass
