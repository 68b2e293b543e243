"""Observed hop topologies of the supported upstream providers.

A topology is configuration, not code: an ordered tuple of stages, each
with its own rule cascade (most specific first, most permissive last).
Providers change their markup without notice, so everything that encodes a
provider's current shape lives here and can be swapped per candidate.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from streamhop.domain.entities.resolution import HopStage, ServerCandidate
from streamhop.infrastructure.codec.payload_codec import VIDSRC_CC_MANIFEST_KEY
from streamhop.infrastructure.navigator.rules import (
    ExtractionRule,
    JsonFieldRule,
    PatternRule,
    VidsrcCcServersRule,
)


@dataclass(frozen=True)
class StageSpec:
    """Rules applied to the content fetched at *stage*.

    A stage without rules is terminal: its content must be the manifest.
    """

    stage: HopStage
    rules: tuple[ExtractionRule, ...] = ()


@dataclass(frozen=True)
class ChainTopology:
    """Hop chain of one server candidate."""

    candidate: ServerCandidate
    stages: tuple[StageSpec, ...]
    manifest_key: str | None = None
    requires_proxy: bool = True
    # Headers the playlist/segment CDN expects beyond User-Agent and Accept.
    proxy_headers: tuple[tuple[str, str], ...] = ()

    def __post_init__(self) -> None:
        if not self.stages:
            raise ValueError(f"topology {self.candidate.name!r} has no stages")
        previous: HopStage | None = None
        for spec in self.stages:
            if previous is not None and spec.stage <= previous:
                raise ValueError(
                    f"topology {self.candidate.name!r}: stages must strictly "
                    f"increase ({previous.name} -> {spec.stage.name})"
                )
            previous = spec.stage

    @property
    def name(self) -> str:
        return self.candidate.name


class TopologyRegistry:
    """Candidate name -> topology lookup, preserving registration order."""

    def __init__(self, topologies: Iterable[ChainTopology]) -> None:
        self._topologies: dict[str, ChainTopology] = {}
        for topology in topologies:
            if topology.name in self._topologies:
                raise ValueError(f"duplicate topology {topology.name!r}")
            self._topologies[topology.name] = topology

    def __contains__(self, name: object) -> bool:
        return name in self._topologies

    @property
    def names(self) -> list[str]:
        return list(self._topologies)

    def get(self, name: str) -> ChainTopology:
        try:
            return self._topologies[name]
        except KeyError:
            raise KeyError(f"unknown server candidate {name!r}") from None

    def candidates(self, order: Sequence[str] | None = None) -> list[ServerCandidate]:
        """Candidates in *order* (unknown names skipped), else registration order."""
        names = [n for n in order if n in self._topologies] if order else self.names
        return [self._topologies[n].candidate for n in names]

    def proxy_headers(self) -> dict[str, dict[str, str]]:
        """Server name -> upstream header profile, for servers that carry one."""
        return {
            name: dict(topology.proxy_headers)
            for name, topology in self._topologies.items()
            if topology.proxy_headers
        }


# ---------------------------------------------------------------------------
# Rule cascades
# ---------------------------------------------------------------------------


def manifest_rules(prefix: str, *, base: str | None = None) -> tuple[PatternRule, ...]:
    """Generic playlist-reference cascade, player configs before bare URLs."""
    return (
        PatternRule(
            f"{prefix}_player_file",
            r"""player[^{]*\{[^}]*file\s*:\s*['"]([^'"]+\.m3u8[^'"]*)['"]""",
            group=1,
            base=base,
        ),
        PatternRule(
            f"{prefix}_file",
            r"""\bfile\s*:\s*['"]([^'"]*\.m3u8[^'"]*)['"]""",
            group=1,
            base=base,
        ),
        PatternRule(
            f"{prefix}_source",
            r"""source\s*:\s*['"]([^'"]*\.m3u8[^'"]*)['"]""",
            group=1,
            base=base,
        ),
        PatternRule(
            f"{prefix}_src_prop",
            r"""src\s*:\s*['"]([^'"]*\.m3u8[^'"]*)['"]""",
            group=1,
            base=base,
        ),
        PatternRule(
            f"{prefix}_src_attr",
            r"""src\s*=\s*['"]([^'"]*\.m3u8[^'"]*)['"]""",
            group=1,
            base=base,
        ),
        PatternRule(
            f"{prefix}_url_prop",
            r"""\burl\s*:\s*['"]([^'"]*\.m3u8[^'"]*)['"]""",
            group=1,
            base=base,
        ),
        PatternRule(
            f"{prefix}_quoted",
            r"""['"]((?:https?:)?//[^\s'"]+\.m3u8[^\s'"]*)['"]""",
            group=1,
            base=base,
        ),
        PatternRule(
            f"{prefix}_absolute",
            r"""https?://[^\s"'<>]+\.m3u8[^\s"'<>]*""",
            base=base,
        ),
    )


_CLOUDNESTRA = "https://cloudnestra.com"
_SHADOWLANDS = "https://tmstr2.shadowlandschronicles.com"

# URL characters up to whitespace, a quote or ">", encoded or not.
_URL_TAIL = r"""(?:(?!%3[Ee]|%20)[^\s"'>])*"""

VIDSRC_XYZ_EMBED_RULES: tuple[ExtractionRule, ...] = (
    PatternRule(
        "rcp_iframe",
        r"""<iframe[^>]*src\s*=\s*["']([^"']*cloudnestra\.com/rcp[^"']*)["'][^>]*>""",
        group=1,
        must_contain="cloudnestra.com/rcp",
    ),
    PatternRule(
        "rcp_src_attr",
        r"""src\s*=\s*["']([^"']*cloudnestra\.com/rcp[^\s"']*)""",
        group=1,
        must_contain="cloudnestra.com/rcp",
    ),
    PatternRule(
        "rcp_absolute",
        r"""https://cloudnestra\.com/rcp/""" + _URL_TAIL,
        must_contain="cloudnestra.com/rcp",
    ),
    PatternRule(
        "rcp_quoted",
        r"""["'](https://cloudnestra\.com/rcp/[^"']*)["']""",
        group=1,
        must_contain="cloudnestra.com/rcp",
    ),
    PatternRule(
        "rcp_protocol_relative",
        r"""//cloudnestra\.com/rcp/""" + _URL_TAIL,
        must_contain="cloudnestra.com/rcp",
    ),
    PatternRule(
        "rcp_root_relative",
        r"""["'](/rcp/[^\s"'>]+)["']""",
        group=1,
        base=_CLOUDNESTRA,
        must_contain="cloudnestra.com/rcp",
    ),
    PatternRule(
        "rcp_server_hash",
        r"""data-hash\s*=\s*["']([^"']+)["']""",
        group=1,
        template=_CLOUDNESTRA + "/rcp/{0}",
    ),
)

VIDSRC_XYZ_RCP_RULES: tuple[ExtractionRule, ...] = (
    PatternRule(
        "prorcp_jquery_iframe",
        r"""\$\(['"]<iframe>?['"]\s*,\s*\{[^}]*src:\s*['"]([^'"]*prorcp[^'"]+)['"]""",
        group=1,
        must_contain="/prorcp/",
    ),
    PatternRule(
        "prorcp_src_prop",
        r"""src:\s*['"]([^'"]*/prorcp/[^'"]+)['"]""",
        group=1,
        must_contain="/prorcp/",
    ),
    PatternRule(
        "prorcp_iframe",
        r"""<iframe[^>]*src\s*=\s*["']([^"']*prorcp[^"']*)["'][^>]*>""",
        group=1,
        must_contain="/prorcp/",
    ),
    PatternRule(
        "prorcp_iframe_assign",
        r"""iframe\.src\s*=\s*["']([^"']*prorcp[^'"]*)['"]""",
        group=1,
        must_contain="/prorcp/",
    ),
    PatternRule(
        "prorcp_path",
        r"""/prorcp/[A-Za-z0-9+/=]+""",
        must_contain="/prorcp/",
    ),
    PatternRule(
        "prorcp_quoted",
        r"""['"]([^'"]*/prorcp/[^'"]+)['"]""",
        group=1,
        must_contain="/prorcp/",
    ),
)

VIDSRC_XYZ_PRORCP_RULES: tuple[ExtractionRule, ...] = (
    PatternRule(
        "shadowlands_playerjs",
        r"""new\s+Playerjs\s*\([^)]*file\s*:\s*"""
        r"""['"]([^'"]*shadowlands[^'"]+\.m3u8[^'"]*)['"]""",
        group=1,
        base=_SHADOWLANDS,
    ),
    PatternRule(
        "shadowlands_file",
        r"""\bfile\s*:\s*['"]([^'"]*shadowlands[^'"]+\.m3u8[^'"]*)['"]""",
        group=1,
        base=_SHADOWLANDS,
    ),
    PatternRule(
        "shadowlands_absolute",
        r"""https?://[^\s"'<>]*shadowlands[^\s"'<>]*\.m3u8[^\s"'<>]*""",
    ),
    PatternRule(
        "shadowlands_quoted",
        r"""['"]([^'"]*shadowlands[^'"]*\.m3u8[^'"]*)['"]""",
        group=1,
        base=_SHADOWLANDS,
    ),
    *manifest_rules("prorcp", base=_SHADOWLANDS),
)

EMBED_SU_IFRAME_RULE = PatternRule(
    "embed_su_iframe",
    r"""<iframe[^>]*src\s*=\s*["']([^"']+)["']""",
    group=1,
)


# ---------------------------------------------------------------------------
# Default candidates
# ---------------------------------------------------------------------------

VIDSRC_XYZ = ChainTopology(
    candidate=ServerCandidate(
        name="vidsrc.xyz",
        url_template="https://vidsrc.xyz/embed/movie/{id}/",
        series_url_template="https://vidsrc.xyz/embed/tv/{id}/{season}/{episode}/",
    ),
    stages=(
        StageSpec(HopStage.EMBED, VIDSRC_XYZ_EMBED_RULES),
        StageSpec(HopStage.INTERMEDIATE_A, VIDSRC_XYZ_RCP_RULES),
        StageSpec(HopStage.INTERMEDIATE_B, VIDSRC_XYZ_PRORCP_RULES),
        StageSpec(HopStage.MANIFEST_HOST),
    ),
)

VIDSRC_CC = ChainTopology(
    candidate=ServerCandidate(
        name="vidsrc.cc",
        url_template="https://vidsrc.cc/v2/embed/movie/{id}",
        series_url_template="https://vidsrc.cc/v2/embed/tv/{id}/{season}/{episode}",
    ),
    stages=(
        StageSpec(HopStage.EMBED, (VidsrcCcServersRule(),)),
        StageSpec(
            HopStage.INTERMEDIATE_A,
            (
                JsonFieldRule(
                    "servers_first_hash",
                    ("data.0.hash",),
                    template="https://vidsrc.cc/api/source/{0}",
                ),
            ),
        ),
        StageSpec(
            HopStage.INTERMEDIATE_B,
            (JsonFieldRule("source_file", ("data.source", "data.sources.0.file")),),
        ),
        StageSpec(HopStage.MANIFEST_HOST),
    ),
    manifest_key=VIDSRC_CC_MANIFEST_KEY,
)

EMBED_SU = ChainTopology(
    candidate=ServerCandidate(
        name="embed.su",
        url_template="https://embed.su/embed/movie/{id}",
        series_url_template="https://embed.su/embed/tv/{id}/{season}/{episode}",
    ),
    stages=(
        StageSpec(HopStage.EMBED, (*manifest_rules("embed_su"), EMBED_SU_IFRAME_RULE)),
        StageSpec(HopStage.INTERMEDIATE_A, manifest_rules("embed_su_frame")),
        StageSpec(HopStage.MANIFEST_HOST),
    ),
    proxy_headers=(
        ("Accept-Language", "en-US,en;q=0.9"),
        ("Referer", "https://embed.su/"),
        ("Origin", "https://embed.su"),
        ("Sec-Fetch-Dest", "empty"),
        ("Sec-Fetch-Mode", "cors"),
        ("Sec-Fetch-Site", "cross-site"),
        ("Cache-Control", "no-cache"),
        ("Pragma", "no-cache"),
    ),
)

DEFAULT_TOPOLOGIES: tuple[ChainTopology, ...] = (VIDSRC_XYZ, VIDSRC_CC, EMBED_SU)


def default_registry() -> TopologyRegistry:
    return TopologyRegistry(DEFAULT_TOPOLOGIES)
