"""Subtitle payload normalisation (gzip, SubRip -> WebVTT)."""

from __future__ import annotations

import gzip
import re
import zlib

import structlog

log = structlog.get_logger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
VTT_HEADER = "WEBVTT"
VTT_MEDIA_TYPE = "text/vtt; charset=utf-8"

_SRT_TIMESTAMP_RE = re.compile(r"\d{2}:\d{2}:\d{2},\d{3}\s*-->")
_SRT_COMMA_RE = re.compile(r"(\d{2}):(\d{2}):(\d{2}),(\d{3})")


def maybe_gunzip(payload: bytes) -> bytes:
    """Decompress *payload* when it carries the gzip magic bytes."""
    if not payload.startswith(GZIP_MAGIC):
        return payload
    try:
        return gzip.decompress(payload)
    except (OSError, EOFError, zlib.error) as exc:
        raise ValueError(f"corrupt gzip subtitle payload: {exc}") from exc


def is_srt(text: str) -> bool:
    return _SRT_TIMESTAMP_RE.search(text) is not None


def srt_to_vtt(text: str) -> str:
    """Convert SubRip text to WebVTT (comma millis -> period, header added)."""
    converted = _SRT_COMMA_RE.sub(r"\1:\2:\3.\4", text.replace("\r\n", "\n"))
    if not converted.lstrip("\ufeff").startswith(VTT_HEADER):
        converted = f"{VTT_HEADER}\n\n{converted}"
    return converted


def normalize_subtitle(payload: bytes) -> str:
    """Bytes as fetched -> caption text ready for the player."""
    text = maybe_gunzip(payload).decode("utf-8", errors="replace")
    if is_srt(text):
        log.debug("subtitle_converted", source="srt", length=len(text))
        return srt_to_vtt(text)
    return text
