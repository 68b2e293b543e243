from .browser_session import BrowserSessionPort
from .hop_fetcher import HopFetcherPort
from .navigator import ChainNavigatorPort

__all__ = [
    "BrowserSessionPort",
    "ChainNavigatorPort",
    "HopFetcherPort",
]
