from __future__ import annotations

from .browser_fetcher import BrowserHopFetcher
from .http_fetcher import HttpHopFetcher, browser_headers
from .navigator import ChainNavigator, StrategyFetchers
from .rules import (
    ExtractionRule,
    JsonFieldRule,
    PatternRule,
    VidsrcCcServersRule,
    clean_tracking_url,
    extract_subtitle_tracks,
    normalize_url,
)
from .topologies import (
    DEFAULT_TOPOLOGIES,
    ChainTopology,
    StageSpec,
    TopologyRegistry,
    default_registry,
)

__all__ = [
    "DEFAULT_TOPOLOGIES",
    "BrowserHopFetcher",
    "ChainNavigator",
    "ChainTopology",
    "ExtractionRule",
    "HttpHopFetcher",
    "JsonFieldRule",
    "PatternRule",
    "StageSpec",
    "StrategyFetchers",
    "TopologyRegistry",
    "VidsrcCcServersRule",
    "browser_headers",
    "clean_tracking_url",
    "default_registry",
    "extract_subtitle_tracks",
    "normalize_url",
]
