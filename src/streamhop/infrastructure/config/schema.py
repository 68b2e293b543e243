"""Pydantic configuration models with validation."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
DEFAULT_CANDIDATES: tuple[str, ...] = ("vidsrc.xyz", "vidsrc.cc", "embed.su")


def _alias(flat: str, section: str, key: str) -> AliasChoices:
    return AliasChoices(flat, AliasPath(section, key))


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned
      (http/playwright/throttle/resolve/proxy/logging).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow
      strict precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    # General
    app_name: str = Field(default="streamhop", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # HTTP (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=20.0,
        validation_alias=_alias("http_timeout_seconds", "http", "timeout_seconds"),
        description="Per-hop HTTP timeout in seconds.",
    )
    http_follow_redirects: bool = Field(
        default=True,
        validation_alias=_alias(
            "http_follow_redirects", "http", "follow_redirects"
        ),
        description="Whether the hop HTTP client follows redirects.",
    )
    http_user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        validation_alias=_alias("http_user_agent", "http", "user_agent"),
        description="User-Agent for proxy passthrough requests.",
    )

    # Playwright (YAML section: playwright.*)
    playwright_enabled: bool = Field(
        default=True,
        validation_alias=_alias("playwright_enabled", "playwright", "enabled"),
        description="Enable the browser (full) extraction strategy.",
    )
    playwright_headless: bool = Field(
        default=True,
        validation_alias=_alias("playwright_headless", "playwright", "headless"),
        description="Run Playwright headless.",
    )
    playwright_timeout_ms: int = Field(
        default=30_000,
        validation_alias=_alias("playwright_timeout_ms", "playwright", "timeout_ms"),
        description="Playwright navigation timeout in milliseconds.",
    )
    playwright_max_sessions: int = Field(
        default=2,
        validation_alias=_alias(
            "playwright_max_sessions", "playwright", "max_sessions"
        ),
        description="Max concurrently open browser sessions.",
    )
    playwright_settle_seconds: float = Field(
        default=6.0,
        validation_alias=_alias(
            "playwright_settle_seconds", "playwright", "settle_seconds"
        ),
        description="Wait after the play interaction for the next hop.",
    )

    # Throttling (YAML section: throttle.*)
    throttle_burst_limit: int = Field(
        default=10,
        validation_alias=_alias("throttle_burst_limit", "throttle", "burst_limit"),
        description="Requests per upstream host within one window.",
    )
    throttle_window_seconds: float = Field(
        default=10.0,
        validation_alias=_alias(
            "throttle_window_seconds", "throttle", "window_seconds"
        ),
        description="Sliding window length in seconds.",
    )
    throttle_min_delay_ms: int = Field(
        default=100,
        validation_alias=_alias("throttle_min_delay_ms", "throttle", "min_delay_ms"),
        description="Lower bound of the random pre-request delay.",
    )
    throttle_max_delay_ms: int = Field(
        default=800,
        validation_alias=_alias("throttle_max_delay_ms", "throttle", "max_delay_ms"),
        description="Upper bound of the random pre-request delay.",
    )

    # Resolution (YAML section: resolve.*)
    resolve_request_timeout_seconds: float = Field(
        default=120.0,
        validation_alias=_alias(
            "resolve_request_timeout_seconds", "resolve", "request_timeout_seconds"
        ),
        description="Aggregate budget for one resolution request.",
    )
    resolve_max_transient_attempts: int = Field(
        default=3,
        validation_alias=_alias(
            "resolve_max_transient_attempts", "resolve", "max_transient_attempts"
        ),
        description="Attempts per (candidate, Timeout|NetworkError).",
    )
    resolve_backoff_base: float = Field(
        default=0.5,
        validation_alias=_alias("resolve_backoff_base", "resolve", "backoff_base"),
        description="First retry delay in seconds (doubles per retry).",
    )
    resolve_max_backoff: float = Field(
        default=8.0,
        validation_alias=_alias("resolve_max_backoff", "resolve", "max_backoff"),
        description="Retry delay ceiling in seconds.",
    )
    resolve_candidates: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CANDIDATES),
        validation_alias=_alias("resolve_candidates", "resolve", "candidates"),
        description="Server candidates in fallback order.",
    )
    resolve_default_server: Optional[str] = Field(
        default=None,
        validation_alias=_alias(
            "resolve_default_server", "resolve", "default_server"
        ),
        description="Candidate tried first when a request names none.",
    )
    resolve_debug_errors: bool = Field(
        default=False,
        validation_alias=_alias("resolve_debug_errors", "resolve", "debug_errors"),
        description="Permit debug detail in error responses.",
    )

    # Proxy (YAML section: proxy.*)
    proxy_public_base_url: str = Field(
        default="",
        validation_alias=_alias(
            "proxy_public_base_url", "proxy", "public_base_url"
        ),
        description="Origin used in rewritten playlist links ('' = relative).",
    )
    proxy_timeout_seconds: float = Field(
        default=30.0,
        validation_alias=_alias("proxy_timeout_seconds", "proxy", "timeout_seconds"),
        description="Upstream timeout for proxied playlists and segments.",
    )
    proxy_chunk_size: int = Field(
        default=65_536,
        validation_alias=_alias("proxy_chunk_size", "proxy", "chunk_size"),
        description="Passthrough chunk size in bytes.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=_alias("log_level", "logging", "level"),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=_alias("log_format", "logging", "format"),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    @field_validator(
        "http_timeout_seconds",
        "playwright_settle_seconds",
        "throttle_window_seconds",
        "resolve_request_timeout_seconds",
        "proxy_timeout_seconds",
    )
    @classmethod
    def _validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts and windows must be > 0")
        return v

    @field_validator("playwright_timeout_ms")
    @classmethod
    def _validate_playwright_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("playwright_timeout_ms must be > 0")
        return v

    @field_validator(
        "playwright_max_sessions",
        "throttle_burst_limit",
        "resolve_max_transient_attempts",
        "proxy_chunk_size",
    )
    @classmethod
    def _validate_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be >= 1")
        return v

    @field_validator("resolve_backoff_base", "resolve_max_backoff")
    @classmethod
    def _validate_backoff(cls, v: float) -> float:
        if v < 0:
            raise ValueError("backoff must be >= 0")
        return v

    @field_validator("resolve_candidates")
    @classmethod
    def _validate_candidates(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("resolve.candidates must not be empty")
        return v

    @field_validator("proxy_public_base_url")
    @classmethod
    def _strip_base_url(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        if self.throttle_min_delay_ms > self.throttle_max_delay_ms:
            raise ValueError("throttle.min_delay_ms must not exceed max_delay_ms")
        if (
            self.resolve_default_server is not None
            and self.resolve_default_server not in self.resolve_candidates
        ):
            raise ValueError("resolve.default_server must be one of resolve.candidates")
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.
        """
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "follow_redirects": self.http_follow_redirects,
                "user_agent": self.http_user_agent,
            },
            "playwright": {
                "enabled": self.playwright_enabled,
                "headless": self.playwright_headless,
                "timeout_ms": self.playwright_timeout_ms,
                "max_sessions": self.playwright_max_sessions,
                "settle_seconds": self.playwright_settle_seconds,
            },
            "throttle": {
                "burst_limit": self.throttle_burst_limit,
                "window_seconds": self.throttle_window_seconds,
                "min_delay_ms": self.throttle_min_delay_ms,
                "max_delay_ms": self.throttle_max_delay_ms,
            },
            "resolve": {
                "request_timeout_seconds": self.resolve_request_timeout_seconds,
                "max_transient_attempts": self.resolve_max_transient_attempts,
                "backoff_base": self.resolve_backoff_base,
                "max_backoff": self.resolve_max_backoff,
                "candidates": list(self.resolve_candidates),
                "default_server": self.resolve_default_server,
                "debug_errors": self.resolve_debug_errors,
            },
            "proxy": {
                "public_base_url": self.proxy_public_base_url,
                "timeout_seconds": self.proxy_timeout_seconds,
                "chunk_size": self.proxy_chunk_size,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    Intended usage:
    - load.py creates EnvOverrides() to read STREAMHOP_* variables,
      converts to dict of set values, merges into YAML/defaults,
      then validates AppConfig.

    Supported env var examples (flat, explicit):
    - STREAMHOP_HTTP_TIMEOUT_SECONDS
    - STREAMHOP_PLAYWRIGHT_ENABLED
    - STREAMHOP_THROTTLE_BURST_LIMIT
    - STREAMHOP_RESOLVE_REQUEST_TIMEOUT_SECONDS
    - STREAMHOP_RESOLVE_CANDIDATES='["vidsrc.cc", "vidsrc.xyz"]'
    - STREAMHOP_LOG_LEVEL
    """

    model_config = SettingsConfigDict(
        env_prefix="STREAMHOP_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_follow_redirects: Optional[bool] = None
    http_user_agent: Optional[str] = None

    playwright_enabled: Optional[bool] = None
    playwright_headless: Optional[bool] = None
    playwright_timeout_ms: Optional[int] = None
    playwright_max_sessions: Optional[int] = None
    playwright_settle_seconds: Optional[float] = None

    throttle_burst_limit: Optional[int] = None
    throttle_window_seconds: Optional[float] = None
    throttle_min_delay_ms: Optional[int] = None
    throttle_max_delay_ms: Optional[int] = None

    resolve_request_timeout_seconds: Optional[float] = None
    resolve_max_transient_attempts: Optional[int] = None
    resolve_backoff_base: Optional[float] = None
    resolve_max_backoff: Optional[float] = None
    resolve_candidates: Optional[list[str]] = None
    resolve_default_server: Optional[str] = None
    resolve_debug_errors: Optional[bool] = None

    proxy_public_base_url: Optional[str] = None
    proxy_timeout_seconds: Optional[float] = None
    proxy_chunk_size: Optional[int] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
