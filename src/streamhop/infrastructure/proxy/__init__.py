from __future__ import annotations

from .stream_proxy import (
    CORS_HEADERS,
    DEFAULT_MEDIA_TYPE,
    MANIFEST_MEDIA_TYPE,
    ProxiedStream,
    ProxyKind,
    StreamProxy,
    minimal_headers,
    proxy_link,
    rewrite_manifest,
    upstream_headers,
)
from .subtitle_search import (
    DEFAULT_LANGUAGE,
    SearchQueryError,
    SubtitleCandidate,
    SubtitleSearch,
    language_name,
    search_url,
)
from .subtitles import (
    VTT_HEADER,
    VTT_MEDIA_TYPE,
    is_srt,
    maybe_gunzip,
    normalize_subtitle,
    srt_to_vtt,
)

__all__ = [
    "CORS_HEADERS",
    "DEFAULT_LANGUAGE",
    "DEFAULT_MEDIA_TYPE",
    "MANIFEST_MEDIA_TYPE",
    "VTT_HEADER",
    "VTT_MEDIA_TYPE",
    "ProxiedStream",
    "ProxyKind",
    "SearchQueryError",
    "StreamProxy",
    "SubtitleCandidate",
    "SubtitleSearch",
    "is_srt",
    "language_name",
    "maybe_gunzip",
    "minimal_headers",
    "normalize_subtitle",
    "proxy_link",
    "rewrite_manifest",
    "search_url",
    "upstream_headers",
    "srt_to_vtt",
]
