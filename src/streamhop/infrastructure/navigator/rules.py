"""Typed extraction rules applied to hop content.

A rule inspects one :class:`HopResult` and either yields the next absolute
URL or ``None``.  Rules are plain data (pattern, group, template, filters) so
a stage's cascade can be reordered or replaced without touching the
navigator.  Within a stage the first rule producing a valid URL wins.
"""

from __future__ import annotations

import html
import json
import re
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from urllib.parse import parse_qs, quote, unquote, urljoin, urlparse

from streamhop.domain.entities.resolution import HopResult, SubtitleTrack
from streamhop.infrastructure.codec.payload_codec import encode_id

_BARE_HOST_RE = re.compile(r"^[A-Za-z0-9.-]+\.[A-Za-z]{2,}(?::\d+)?/")
_QUOTES = "\"'`"


def normalize_url(raw: str, base: str) -> str | None:
    """Resolve a URL as it appears in markup or script to absolute form.

    Handles absolute, protocol-relative (``//host/..``), root-relative
    (``/path``), bare-host (``host.tld/path``) and path-relative forms.
    HTML entities and JSON-escaped slashes are undone first.

    Returns:
        The absolute http(s) URL, or ``None`` when the candidate does not
        form one.
    """
    candidate = html.unescape(raw.strip()).replace("\\/", "/").strip(_QUOTES).strip()
    if not candidate:
        return None

    if candidate.startswith("//"):
        scheme = urlparse(base).scheme or "https"
        candidate = f"{scheme}:{candidate}"
    elif candidate.startswith(("http://", "https://")):
        pass
    elif _BARE_HOST_RE.match(candidate):
        candidate = f"https://{candidate}"
    else:
        candidate = urljoin(base, candidate)

    try:
        parsed = urlparse(candidate)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    if any(ch.isspace() for ch in candidate):
        return None
    return candidate


def clean_tracking_url(url: str) -> str:
    """Unwrap a URL that carries the real target in an ``mu=`` parameter."""
    try:
        query = parse_qs(urlparse(url).query)
    except ValueError:
        return url
    for value in query.get("mu", []):
        target = unquote(value)
        if target.startswith(("http://", "https://")):
            return target
    return url


def is_manifest_url(url: str) -> bool:
    return ".m3u8" in urlparse(url).path or ".m3u8" in url


def is_direct_media_url(url: str) -> bool:
    return urlparse(url).path.lower().endswith(".mp4")


# ---------------------------------------------------------------------------
# Rule protocol and implementations
# ---------------------------------------------------------------------------


@runtime_checkable
class ExtractionRule(Protocol):
    """One pattern matcher plus its URL normalisation."""

    name: str

    def extract(self, hop: HopResult) -> str | None:
        """Return the next absolute URL found in *hop*, or ``None``."""
        ...


@dataclass(frozen=True)
class PatternRule:
    """Regex-based rule.

    Args:
        name: Identifier used in logs.
        pattern: Regular expression searched in the hop body.
        group: Capture group holding the URL (0 = whole match).
        template: Optional ``str.format`` template receiving the captured
            value as ``{0}`` (for rules that capture an id, not a URL).
        must_contain: Substring the normalised URL must contain.
        base: Authority to resolve relative references against instead of
            the hop's own URL.
    """

    name: str
    pattern: str
    group: int = 0
    template: str | None = None
    must_contain: str | None = None
    base: str | None = None
    flags: int = re.IGNORECASE
    _compiled: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_compiled", re.compile(self.pattern, self.flags))

    def extract(self, hop: HopResult) -> str | None:
        base = self.base or hop.url
        for match in self._compiled.finditer(hop.body):
            value = match.group(self.group)
            if not value:
                continue
            raw = self.template.format(value) if self.template else value
            url = normalize_url(raw, base)
            if url is None:
                continue
            if self.must_contain and self.must_contain not in url:
                continue
            return url
        return None


def _walk(document: Any, path: str) -> Any:
    node = document
    for part in path.split("."):
        if isinstance(node, list):
            if not part.isdigit() or int(part) >= len(node):
                return None
            node = node[int(part)]
        elif isinstance(node, dict):
            node = node.get(part)
        else:
            return None
        if node is None:
            return None
    return node


def load_json(body: str) -> Any:
    """Parse *body* as JSON, returning ``None`` for anything else."""
    stripped = body.strip()
    if not stripped or stripped[0] not in "{[":
        return None
    try:
        return json.loads(stripped)
    except ValueError:
        return None


@dataclass(frozen=True)
class JsonFieldRule:
    """Rule reading the next URL (or an id for *template*) from a JSON API.

    *paths* are dotted lookups tried in order, list indices as digits
    (``data.sources.0.file``).
    """

    name: str
    paths: tuple[str, ...]
    template: str | None = None
    must_contain: str | None = None

    def extract(self, hop: HopResult) -> str | None:
        document = load_json(hop.body)
        if document is None:
            return None
        for path in self.paths:
            value = _walk(document, path)
            if not isinstance(value, (str, int)) or value == "":
                continue
            raw = self.template.format(value) if self.template else str(value)
            url = normalize_url(raw, hop.url)
            if url is None:
                continue
            if self.must_contain and self.must_contain not in url:
                continue
            return url
        return None


_PAGE_VAR = r"""\b{name}\s*[=:]\s*["']([^"']+)["']"""
_CC_PATH_RE = re.compile(
    r"/embed/(?P<type>movie|tv)/(?P<id>[^/?#]+)(?:/(?P<season>\d+)/(?P<episode>\d+))?"
)


@dataclass(frozen=True)
class VidsrcCcServersRule:
    """Build the servers API URL from variables on a vidsrc.cc embed page.

    The page exposes ``userId``, ``v`` and ``imdbId``; the API expects the
    media id encrypted under ``userId`` as the ``vrf`` parameter.
    """

    api_base: str = "https://vidsrc.cc/api"
    name: str = "vidsrc_cc_servers"

    @staticmethod
    def _page_var(body: str, name: str) -> str | None:
        match = re.search(_PAGE_VAR.format(name=re.escape(name)), body)
        return match.group(1) if match else None

    def extract(self, hop: HopResult) -> str | None:
        path = _CC_PATH_RE.search(urlparse(hop.url).path)
        user_id = self._page_var(hop.body, "userId")
        version = self._page_var(hop.body, "v")
        if path is None or not user_id or not version:
            return None

        media_id = self._page_var(hop.body, "movieId") or path.group("id")
        imdb_id = self._page_var(hop.body, "imdbId") or ""
        media_type = path.group("type")

        # Parameter order and encoding follow the player script.
        query = (
            f"id={media_id}&type={media_type}&v={_quote(version)}"
            f"&vrf={encode_id(media_id, user_id)}&imdbId={imdb_id}"
        )
        if media_type == "tv" and path.group("season") and path.group("episode"):
            query += f"&season={path.group('season')}&episode={path.group('episode')}"
        return f"{self.api_base}/{media_id}/servers?{query}"


def _quote(value: str) -> str:
    return quote(value, safe="-_.!~*'()")


def apply_rules(
    rules: tuple[ExtractionRule, ...], hop: HopResult
) -> tuple[str, str] | None:
    """Return ``(rule_name, url)`` for the first matching rule."""
    for rule in rules:
        url = rule.extract(hop)
        if url:
            return rule.name, url
    return None


# ---------------------------------------------------------------------------
# Subtitle discovery
# ---------------------------------------------------------------------------

_TRACK_TAG_RE = re.compile(r"<track\b[^>]*>", re.IGNORECASE)
_ATTR_RE = re.compile(r"""([\w-]+)\s*=\s*["']([^"']*)["']""")


def _tracks_from_json(document: Any, base: str) -> list[SubtitleTrack]:
    tracks: list[SubtitleTrack] = []
    containers = [document]
    if isinstance(document, dict) and isinstance(document.get("data"), dict):
        containers.append(document["data"])
    for container in containers:
        if not isinstance(container, dict):
            continue
        for key in ("subtitles", "tracks"):
            entries = container.get(key)
            if not isinstance(entries, list):
                continue
            for entry in entries:
                if not isinstance(entry, dict):
                    continue
                if entry.get("kind") not in (None, "captions", "subtitles"):
                    continue
                raw = entry.get("file") or entry.get("url") or entry.get("src")
                url = normalize_url(raw, base) if isinstance(raw, str) else None
                if url is None:
                    continue
                label = str(entry.get("label") or "")
                language = str(entry.get("lang") or entry.get("language") or label)
                tracks.append(SubtitleTrack(language=language, url=url, label=label))
    return tracks


def _tracks_from_html(body: str, base: str) -> list[SubtitleTrack]:
    tracks: list[SubtitleTrack] = []
    for tag in _TRACK_TAG_RE.findall(body):
        attrs = {k.lower(): v for k, v in _ATTR_RE.findall(tag)}
        if attrs.get("kind", "subtitles") not in ("captions", "subtitles"):
            continue
        url = normalize_url(attrs.get("src", ""), base)
        if url is None:
            continue
        label = attrs.get("label", "")
        tracks.append(
            SubtitleTrack(
                language=attrs.get("srclang") or label, url=url, label=label
            )
        )
    return tracks


def extract_subtitle_tracks(body: str, base: str) -> list[SubtitleTrack]:
    """Find subtitle tracks in a JSON API response or an HTML page."""
    document = load_json(body)
    if document is not None:
        return _tracks_from_json(document, base)
    return _tracks_from_html(body, base)
