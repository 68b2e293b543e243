"""Shared test fixtures for the streamhop test suite."""

from __future__ import annotations

import pytest

from streamhop.domain.entities.resolution import (
    ExtractionRequest,
    Fingerprint,
    ServerCandidate,
)

# ---------------------------------------------------------------------------
# Domain entity fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fingerprint() -> Fingerprint:
    """Deterministic Windows/Chrome fingerprint."""
    return Fingerprint(
        user_agent=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
        ),
        platform="Win32",
        language="en-US",
        languages=("en-US", "en"),
        hardware_concurrency=8,
        device_memory=8,
        screen_width=1920,
        screen_height=1080,
        timezone="America/New_York",
    )


@pytest.fixture()
def movie_request() -> ExtractionRequest:
    return ExtractionRequest(media_type="movie", catalog_id="tt0133093")


@pytest.fixture()
def series_request() -> ExtractionRequest:
    return ExtractionRequest(
        media_type="series", catalog_id="tt0944947", season=1, episode=2
    )


@pytest.fixture()
def candidate_a() -> ServerCandidate:
    return ServerCandidate(
        name="a.example",
        url_template="https://a.example/embed/movie/{id}",
        series_url_template="https://a.example/embed/tv/{id}/{season}/{episode}",
    )


@pytest.fixture()
def candidate_b() -> ServerCandidate:
    return ServerCandidate(name="b.example", url_template="https://b.example/e/{id}")

