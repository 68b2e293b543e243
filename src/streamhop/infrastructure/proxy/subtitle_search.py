"""OpenSubtitles REST search, used when embed pages carry no subtitle tracks.

The legacy ``rest.opensubtitles.org`` API addresses a search by path
segments (``imdbid-<id>/sublanguageid-<lang>``).  Segments must be sorted
alphabetically and the whole URL lowercased, otherwise the API answers with
a redirect loop instead of results.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from streamhop.domain.exceptions import PayloadDecodeError, UpstreamRejectedError

log = structlog.get_logger(__name__)

OPENSUBTITLES_SEARCH_URL = "https://rest.opensubtitles.org/search"
# The legacy API only admits registered agents; this one is its public test agent.
OPENSUBTITLES_USER_AGENT = "TemporaryUserAgent"
DEFAULT_LANGUAGE = "eng"

SUBTITLE_FORMATS = frozenset({"srt", "vtt"})

# OpenSubtitles language id -> (display name, ISO 639-1)
LANGUAGES: dict[str, tuple[str, str]] = {
    "eng": ("English", "en"),
    "spa": ("Spanish", "es"),
    "fre": ("French", "fr"),
    "ger": ("German", "de"),
    "ita": ("Italian", "it"),
    "por": ("Portuguese", "pt"),
    "rus": ("Russian", "ru"),
    "ara": ("Arabic", "ar"),
    "chi": ("Chinese (simplified)", "zh"),
    "jpn": ("Japanese", "ja"),
}
_UNKNOWN_LANGUAGE = ("Unknown", "en")

_TOKEN_RE = re.compile(r"^[A-Za-z0-9]+$")


class SearchQueryError(ValueError):
    """A search parameter is missing or malformed."""


def language_name(language_id: str) -> str:
    return LANGUAGES.get(language_id, _UNKNOWN_LANGUAGE)[0]


def search_url(
    imdb_id: str,
    language_id: str = DEFAULT_LANGUAGE,
    season: int | None = None,
    episode: int | None = None,
    *,
    base_url: str = OPENSUBTITLES_SEARCH_URL,
) -> str:
    """Build the search URL: sorted path segments, lowercased.

    Season and episode only narrow the search when both are given.

    Raises:
        SearchQueryError: Empty or non-alphanumeric id/language.
    """
    if not imdb_id or not _TOKEN_RE.match(imdb_id):
        raise SearchQueryError("imdbId must be alphanumeric")
    if not _TOKEN_RE.match(language_id):
        raise SearchQueryError("languageId must be alphanumeric")

    segments = [f"imdbid-{imdb_id}", f"sublanguageid-{language_id}"]
    if season is not None and episode is not None:
        segments += [f"season-{season}", f"episode-{episode}"]
    return f"{base_url.rstrip('/')}/{'/'.join(sorted(segments))}".lower()


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def quality_score(entry: dict[str, Any]) -> int:
    """0-100 ranking: download count, rating, and a bonus for WebVTT."""
    score = 50
    downloads = _as_int(entry.get("SubDownloadsCnt"))
    if downloads > 1000:
        score += 20
    elif downloads > 100:
        score += 10
    elif downloads > 10:
        score += 5
    score += round(_as_float(entry.get("SubRating")) * 5)
    if entry.get("SubFormat") == "vtt":
        score += 15
    return min(100, max(0, score))


@dataclass(frozen=True)
class SubtitleCandidate:
    id: str
    url: str
    language: str
    iso639: str
    lang_code: str
    format: str
    encoding: str
    file_name: str
    release_name: str
    quality_score: int
    downloads: int
    rating: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "language": self.language,
            "iso639": self.iso639,
            "langCode": self.lang_code,
            "format": self.format,
            "encoding": self.encoding,
            "fileName": self.file_name,
            "releaseName": self.release_name,
            "qualityScore": self.quality_score,
            "isVTT": self.format == "vtt",
            "downloads": self.downloads,
            "rating": self.rating,
            "source": "opensubtitles",
        }


def parse_results(entries: list[Any], language_id: str) -> list[SubtitleCandidate]:
    """Keep SubRip/WebVTT entries, best quality first."""
    name, iso639 = LANGUAGES.get(language_id, _UNKNOWN_LANGUAGE)
    candidates = [
        SubtitleCandidate(
            id=str(entry.get("IDSubtitleFile", "")),
            url=str(entry.get("SubDownloadLink", "")),
            language=name,
            iso639=iso639,
            lang_code=language_id,
            format=entry["SubFormat"],
            encoding=entry.get("SubEncoding") or "UTF-8",
            file_name=str(entry.get("SubFileName", "")),
            release_name=str(entry.get("MovieReleaseName", "")),
            quality_score=quality_score(entry),
            downloads=_as_int(entry.get("SubDownloadsCnt")),
            rating=_as_float(entry.get("SubRating")),
        )
        for entry in entries
        if isinstance(entry, dict)
        and entry.get("SubFormat") in SUBTITLE_FORMATS
        and entry.get("SubDownloadLink")
    ]
    candidates.sort(key=lambda c: c.quality_score, reverse=True)
    return candidates


class SubtitleSearch:
    """Queries OpenSubtitles over the shared throttled client."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str = OPENSUBTITLES_SEARCH_URL,
        user_agent: str = OPENSUBTITLES_USER_AGENT,
    ) -> None:
        self._client = client
        self._base_url = base_url
        self._headers = {
            "User-Agent": user_agent,
            "X-User-Agent": user_agent,
            "Accept": "application/json",
            "Cache-Control": "no-cache",
        }

    async def search(
        self,
        imdb_id: str,
        language_id: str = DEFAULT_LANGUAGE,
        season: int | None = None,
        episode: int | None = None,
    ) -> list[SubtitleCandidate]:
        """Search subtitles for a title (or one episode of it).

        Raises:
            SearchQueryError: Malformed parameters.
            UpstreamRejectedError: OpenSubtitles answered non-2xx.
            PayloadDecodeError: The answer is not a JSON list.
        """
        url = search_url(
            imdb_id, language_id, season, episode, base_url=self._base_url
        )
        resp = await self._client.get(
            url, headers=self._headers, follow_redirects=True
        )
        if not resp.is_success:
            raise UpstreamRejectedError(resp.status_code, url)
        try:
            entries = resp.json()
        except ValueError as exc:
            raise PayloadDecodeError("subtitle search returned invalid JSON") from exc
        if not isinstance(entries, list):
            raise PayloadDecodeError("subtitle search returned no result list")

        candidates = parse_results(entries, language_id)
        log.info(
            "subtitle_search_completed",
            imdb_id=imdb_id,
            language=language_id,
            found=len(entries),
            usable=len(candidates),
        )
        return candidates
