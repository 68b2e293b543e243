"""Tests for extraction rules and provider topologies."""

from __future__ import annotations

import json

import pytest

from streamhop.domain.entities.resolution import HopResult, HopStage, ServerCandidate
from streamhop.infrastructure.codec import encode_id
from streamhop.infrastructure.navigator import (
    ChainTopology,
    JsonFieldRule,
    PatternRule,
    StageSpec,
    TopologyRegistry,
    VidsrcCcServersRule,
    clean_tracking_url,
    default_registry,
    extract_subtitle_tracks,
    normalize_url,
)
from streamhop.infrastructure.navigator.rules import apply_rules
from streamhop.infrastructure.navigator.topologies import (
    VIDSRC_XYZ_EMBED_RULES,
    VIDSRC_XYZ_PRORCP_RULES,
    VIDSRC_XYZ_RCP_RULES,
    manifest_rules,
)

_EMBED_URL = "https://vidsrc.xyz/embed/movie/tt0133093/"
_RCP_URL = "https://cloudnestra.com/rcp/MTIzNDU2Nzg5"


def _hop(body: str, url: str = _EMBED_URL) -> HopResult:
    return HopResult(url=url, status=200, content_type="text/html", body=body)


# ---------------------------------------------------------------------------
# normalize_url / clean_tracking_url
# ---------------------------------------------------------------------------


class TestNormalizeUrl:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("https://a.example/x", "https://a.example/x"),
            ("//cdn.example/x.m3u8", "https://cdn.example/x.m3u8"),
            ("/path/y", "https://host.example/path/y"),
            ("seg.m3u8", "https://host.example/dir/seg.m3u8"),
            ("cdn.example.com/v/x.m3u8", "https://cdn.example.com/v/x.m3u8"),
            ("https:\\/\\/a.example\\/x", "https://a.example/x"),
            ("https://a.example/x?a=1&amp;b=2", "https://a.example/x?a=1&b=2"),
            ("'https://a.example/q'", "https://a.example/q"),
        ],
    )
    def test_surface_forms(self, raw: str, expected: str) -> None:
        assert normalize_url(raw, "https://host.example/dir/page") == expected

    @pytest.mark.parametrize(
        "raw", ["", "   ", "javascript:void(0)", "https://a.example/with space"]
    )
    def test_rejects(self, raw: str) -> None:
        assert normalize_url(raw, "https://host.example/") is None

    def test_protocol_relative_keeps_base_scheme(self) -> None:
        assert normalize_url("//a.example/x", "http://b.example/") == (
            "http://a.example/x"
        )


class TestCleanTrackingUrl:
    def test_unwraps_mu_parameter(self) -> None:
        wrapped = (
            "https://track.example/hit?id=1&mu="
            "https%3A%2F%2Fcdn.example%2Fhls%2Fmaster.m3u8"
        )
        assert clean_tracking_url(wrapped) == "https://cdn.example/hls/master.m3u8"

    def test_ignores_non_url_mu(self) -> None:
        url = "https://cdn.example/a.m3u8?mu=abc"
        assert clean_tracking_url(url) == url

    def test_plain_url_unchanged(self) -> None:
        url = "https://cdn.example/a.m3u8"
        assert clean_tracking_url(url) == url


# ---------------------------------------------------------------------------
# PatternRule / JsonFieldRule
# ---------------------------------------------------------------------------


class TestPatternRule:
    def test_group_and_base(self) -> None:
        rule = PatternRule(
            "r", r'file:\s*"([^"]+)"', group=1, base="https://cdn.example"
        )
        assert rule.extract(_hop('file: "/hls/a.m3u8"')) == (
            "https://cdn.example/hls/a.m3u8"
        )

    def test_template(self) -> None:
        rule = PatternRule(
            "r", r'data-id="(\w+)"', group=1, template="https://x.example/e/{0}"
        )
        assert rule.extract(_hop('<div data-id="abc">')) == "https://x.example/e/abc"

    def test_must_contain_skips_to_next_match(self) -> None:
        rule = PatternRule("r", r"https://[^\s\"]+", must_contain="/keep/")
        body = 'https://a.example/drop/1 "https://a.example/keep/2"'
        assert rule.extract(_hop(body)) == "https://a.example/keep/2"

    def test_no_match(self) -> None:
        assert PatternRule("r", r"nothing-here").extract(_hop("<html>")) is None


class TestJsonFieldRule:
    def test_paths_tried_in_order(self) -> None:
        rule = JsonFieldRule("j", ("data.source", "data.sources.0.file"))
        body = json.dumps({"data": {"sources": [{"file": "https://c.example/a.m3u8"}]}})
        assert rule.extract(_hop(body)) == "https://c.example/a.m3u8"

    def test_template_with_id(self) -> None:
        rule = JsonFieldRule(
            "j", ("data.0.hash",), template="https://vidsrc.cc/api/source/{0}"
        )
        body = json.dumps({"data": [{"name": "VidPlay", "hash": "H1"}]})
        assert rule.extract(_hop(body)) == "https://vidsrc.cc/api/source/H1"

    def test_html_body_ignored(self) -> None:
        rule = JsonFieldRule("j", ("data.source",))
        assert rule.extract(_hop("<html>{}</html>")) is None

    def test_missing_index(self) -> None:
        rule = JsonFieldRule("j", ("data.3.hash",))
        assert rule.extract(_hop('{"data": [{"hash": "x"}]}')) is None


# ---------------------------------------------------------------------------
# vidsrc.xyz cascades
# ---------------------------------------------------------------------------


class TestVidsrcXyzEmbedRules:
    """Every surface form of the intermediate reference resolves identically."""

    @pytest.mark.parametrize(
        "body",
        [
            f'<iframe id="player_iframe" src="{_RCP_URL}" frameborder="0"></iframe>',
            '<iframe id="player_iframe" src="//cloudnestra.com/rcp/MTIzNDU2Nzg5">',
            '<iframe id="player_iframe" src="/rcp/MTIzNDU2Nzg5"></iframe>',
        ],
        ids=["absolute", "protocol_relative", "root_relative"],
    )
    def test_surface_forms_resolve_to_same_url(self, body: str) -> None:
        match = apply_rules(VIDSRC_XYZ_EMBED_RULES, _hop(body))
        assert match is not None
        assert match[1] == _RCP_URL

    def test_server_hash_entry(self) -> None:
        body = '<div class="server" data-hash="MTIzNDU2Nzg5">CloudStream Pro</div>'
        match = apply_rules(VIDSRC_XYZ_EMBED_RULES, _hop(body))
        assert match == ("rcp_server_hash", _RCP_URL)

    def test_unrelated_page(self) -> None:
        assert apply_rules(VIDSRC_XYZ_EMBED_RULES, _hop("<p>nothing</p>")) is None

    @pytest.mark.parametrize(
        ("body", "rule"),
        [
            (
                "frame=https://cloudnestra.com/rcp/MTIzNDU2Nzg5%3E%3C%2Fiframe%3E",
                "rcp_absolute",
            ),
            (
                "frame=https://cloudnestra.com/rcp/MTIzNDU2Nzg5%3e",
                "rcp_absolute",
            ),
            (
                "load(//cloudnestra.com/rcp/MTIzNDU2Nzg5%20width=100)",
                "rcp_protocol_relative",
            ),
        ],
        ids=["encoded_bracket", "lowercase_encoding", "encoded_space"],
    )
    def test_unquoted_url_stops_at_encoded_delimiter(
        self, body: str, rule: str
    ) -> None:
        assert apply_rules(VIDSRC_XYZ_EMBED_RULES, _hop(body)) == (rule, _RCP_URL)


class TestVidsrcXyzRcpRules:
    def test_jquery_iframe(self) -> None:
        body = (
            "$('<iframe>', {id: 'player_iframe', "
            "src: '/prorcp/QWxhZGRpbjpvcGVu', frameborder: 0})"
        )
        match = apply_rules(VIDSRC_XYZ_RCP_RULES, _hop(body, _RCP_URL))
        assert match == (
            "prorcp_jquery_iframe",
            "https://cloudnestra.com/prorcp/QWxhZGRpbjpvcGVu",
        )

    def test_bare_path_in_script(self) -> None:
        body = "var loc = '/prorcp/QWxhZGRpbjpvcGVu';"
        match = apply_rules(VIDSRC_XYZ_RCP_RULES, _hop(body, _RCP_URL))
        assert match is not None
        assert match[1] == "https://cloudnestra.com/prorcp/QWxhZGRpbjpvcGVu"


class TestVidsrcXyzProrcpRules:
    def test_absolute_shadowlands(self) -> None:
        body = (
            'new Playerjs({id: "player_parent", file: '
            '"https://tmstr2.shadowlandschronicles.com/pl/H4sI/master.m3u8"});'
        )
        match = apply_rules(VIDSRC_XYZ_PRORCP_RULES, _hop(body, _RCP_URL))
        assert match == (
            "shadowlands_playerjs",
            "https://tmstr2.shadowlandschronicles.com/pl/H4sI/master.m3u8",
        )

    def test_relative_reference_uses_manifest_host(self) -> None:
        body = 'var player = new Playerjs({id: "p", file: "/pl/H4sI/master.m3u8"});'
        match = apply_rules(VIDSRC_XYZ_PRORCP_RULES, _hop(body, _RCP_URL))
        assert match is not None
        assert match[1] == (
            "https://tmstr2.shadowlandschronicles.com/pl/H4sI/master.m3u8"
        )


class TestManifestRules:
    @pytest.mark.parametrize(
        "body",
        [
            'jwplayer("p").setup({file: "https://c.example/a.m3u8"})',
            "sources: [{source: 'https://c.example/a.m3u8'}]",
            '<video src="https://c.example/a.m3u8"></video>',
            'fetch("https://c.example/a.m3u8")',
        ],
    )
    def test_finds_playlist(self, body: str) -> None:
        match = apply_rules(manifest_rules("t"), _hop(body))
        assert match is not None
        assert match[1] == "https://c.example/a.m3u8"


# ---------------------------------------------------------------------------
# vidsrc.cc servers rule
# ---------------------------------------------------------------------------


class TestVidsrcCcServersRule:
    _PAGE = (
        '<script>var userId = "u-42"; var v = "MTcyOTA=";'
        ' var imdbId = "tt0133093";</script>'
    )

    def test_movie_servers_url(self) -> None:
        hop = _hop(self._PAGE, "https://vidsrc.cc/v2/embed/movie/tt0133093")
        url = VidsrcCcServersRule().extract(hop)
        vrf = encode_id("tt0133093", "u-42")
        assert url == (
            "https://vidsrc.cc/api/tt0133093/servers?id=tt0133093&type=movie"
            f"&v=MTcyOTA%3D&vrf={vrf}&imdbId=tt0133093"
        )

    def test_series_adds_season_episode(self) -> None:
        hop = _hop(self._PAGE, "https://vidsrc.cc/v2/embed/tv/tt0944947/2/5")
        url = VidsrcCcServersRule().extract(hop)
        assert url is not None
        assert "type=tv" in url
        assert url.endswith("&season=2&episode=5")

    def test_missing_user_id(self) -> None:
        hop = _hop('var v = "x";', "https://vidsrc.cc/v2/embed/movie/1")
        assert VidsrcCcServersRule().extract(hop) is None


# ---------------------------------------------------------------------------
# Subtitle discovery
# ---------------------------------------------------------------------------


class TestExtractSubtitleTracks:
    def test_json_under_data(self) -> None:
        body = json.dumps(
            {
                "data": {
                    "source": "https://c.example/a.m3u8",
                    "subtitles": [
                        {"label": "English", "lang": "en", "file": "/subs/en.vtt"},
                        {"label": "Thumbs", "kind": "thumbnails", "file": "/t.vtt"},
                    ],
                }
            }
        )
        tracks = extract_subtitle_tracks(body, "https://vidsrc.cc/api/source/H")
        assert [(t.language, t.url, t.label) for t in tracks] == [
            ("en", "https://vidsrc.cc/subs/en.vtt", "English")
        ]

    def test_html_track_tags(self) -> None:
        body = (
            '<video><track kind="captions" src="//s.example/de.srt" srclang="de"'
            ' label="Deutsch"><track kind="chapters" src="/c.vtt"></video>'
        )
        tracks = extract_subtitle_tracks(body, "https://embed.su/embed/movie/1")
        assert len(tracks) == 1
        assert tracks[0].url == "https://s.example/de.srt"
        assert tracks[0].language == "de"

    def test_none_found(self) -> None:
        assert extract_subtitle_tracks("<html></html>", "https://a.example/") == []


# ---------------------------------------------------------------------------
# Topologies / registry
# ---------------------------------------------------------------------------


class TestTopologies:
    def test_default_order(self) -> None:
        registry = default_registry()
        assert registry.names == ["vidsrc.xyz", "vidsrc.cc", "embed.su"]

    def test_candidates_follow_configured_order(self) -> None:
        registry = default_registry()
        names = [c.name for c in registry.candidates(["embed.su", "nope", "vidsrc.cc"])]
        assert names == ["embed.su", "vidsrc.cc"]

    def test_unknown_candidate(self) -> None:
        with pytest.raises(KeyError, match="unknown server candidate"):
            default_registry().get("nope")

    def test_contains(self) -> None:
        assert "vidsrc.cc" in default_registry()

    def test_vidsrc_cc_has_manifest_key(self) -> None:
        assert default_registry().get("vidsrc.cc").manifest_key == "DFKykVC3c1"

    def test_only_embed_su_has_proxy_headers(self) -> None:
        profiles = default_registry().proxy_headers()
        assert list(profiles) == ["embed.su"]
        assert profiles["embed.su"]["Referer"] == "https://embed.su/"
        assert profiles["embed.su"]["Origin"] == "https://embed.su"

    def test_terminal_stage_has_no_rules(self) -> None:
        for name in default_registry().names:
            last = default_registry().get(name).stages[-1]
            assert last.stage is HopStage.MANIFEST_HOST
            assert last.rules == ()

    def test_stages_must_increase(self) -> None:
        candidate = ServerCandidate("x", "https://x.example/{id}")
        with pytest.raises(ValueError, match="strictly increase"):
            ChainTopology(
                candidate,
                (StageSpec(HopStage.INTERMEDIATE_A), StageSpec(HopStage.EMBED)),
            )

    def test_empty_topology_rejected(self) -> None:
        with pytest.raises(ValueError, match="no stages"):
            ChainTopology(ServerCandidate("x", "https://x.example/{id}"), ())

    def test_duplicate_names_rejected(self) -> None:
        topology = default_registry().get("embed.su")
        with pytest.raises(ValueError, match="duplicate"):
            TopologyRegistry([topology, topology])
