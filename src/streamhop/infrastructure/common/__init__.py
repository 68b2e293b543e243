from __future__ import annotations

from .rate_limiter import HostWindow, RequestThrottler, host_key
from .throttled_transport import ThrottledTransport, build_client

__all__ = [
    "HostWindow",
    "RequestThrottler",
    "ThrottledTransport",
    "build_client",
    "host_key",
]
