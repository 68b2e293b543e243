from __future__ import annotations

from .pool import CHROME_MAJOR_VERSIONS, FingerprintPool, build_user_agent

__all__ = ["CHROME_MAJOR_VERSIONS", "FingerprintPool", "build_user_agent"]
