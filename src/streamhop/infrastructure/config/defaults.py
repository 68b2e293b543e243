"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

from .schema import DEFAULT_CANDIDATES, DEFAULT_USER_AGENT

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "streamhop",
    "environment": "dev",
    "http": {
        "timeout_seconds": 20.0,
        "follow_redirects": True,
        "user_agent": DEFAULT_USER_AGENT,
    },
    "playwright": {
        "enabled": True,
        "headless": True,
        "timeout_ms": 30_000,
        "max_sessions": 2,
        "settle_seconds": 6.0,
    },
    "throttle": {
        "burst_limit": 10,
        "window_seconds": 10.0,
        "min_delay_ms": 100,
        "max_delay_ms": 800,
    },
    "resolve": {
        "request_timeout_seconds": 120.0,
        "max_transient_attempts": 3,
        "backoff_base": 0.5,
        "max_backoff": 8.0,
        "candidates": list(DEFAULT_CANDIDATES),
        "default_server": None,
        "debug_errors": False,
    },
    "proxy": {
        "public_base_url": "",
        "timeout_seconds": 30.0,
        "chunk_size": 65_536,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
}
