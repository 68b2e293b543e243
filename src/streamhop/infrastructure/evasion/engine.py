"""Headless browser sessions with anti-bot evasions.

Manages a single Chromium instance (launched lazily, shared process-wide).
Every session gets its own ``BrowserContext`` configured from one
fingerprint, with stealth evasions, the init-script shims and resource
blocking installed before the first navigation.  A counting semaphore caps
concurrently open sessions; contexts are closed on every exit path.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import structlog
from playwright.async_api import (
    Browser,
    BrowserContext,
    Playwright,
    Route,
    async_playwright,
)
from playwright_stealth import Stealth

from streamhop.domain.entities.resolution import Fingerprint
from streamhop.infrastructure.common.rate_limiter import RequestThrottler
from streamhop.infrastructure.evasion.behavior import HumanBehaviorSimulator
from streamhop.infrastructure.evasion.scripts import build_init_script
from streamhop.infrastructure.evasion.session import EvasionSession

log = structlog.get_logger(__name__)

T = TypeVar("T")

_BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "stylesheet"})

_LAUNCH_ARGS = (
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-first-run",
    "--no-default-browser-check",
)


async def _block_resources(route: Route) -> None:
    """Abort requests for heavy resource types."""
    if route.request.resource_type in _BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class AntiBotEvasionEngine:
    """Scoped, fingerprinted browser sessions.

    Usage::

        engine = AntiBotEvasionEngine(max_sessions=2)
        async with engine.session(fingerprint) as session:
            await session.goto(url)
        await engine.cleanup()

    Args:
        headless: Launch Chromium headless.
        timeout_ms: Default navigation/action timeout per page.
        max_sessions: Concurrently open sessions (each is a full context).
        settle_seconds: Wait after the play interaction for the next hop.
        throttler: Shared throttler gating navigations.
        rng: Random source for behaviour and storage seeding.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        timeout_ms: int = 30_000,
        max_sessions: int = 2,
        settle_seconds: float = 6.0,
        throttler: RequestThrottler | None = None,
        rng: random.Random | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")
        self._headless = headless
        self._timeout_ms = timeout_ms
        self._settle_seconds = settle_seconds
        self._throttler = throttler
        self._rng = rng or random.Random()
        self._playwright_factory = playwright_factory
        self._max_sessions = max_sessions
        self._semaphore = asyncio.Semaphore(max_sessions)
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()
        self._active = 0

    @property
    def active_sessions(self) -> int:
        return self._active

    @property
    def max_sessions(self) -> int:
        return self._max_sessions

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _ensure_browser(self) -> Browser:
        """Launch Playwright + Chromium once (double-check lock)."""
        if self._browser is not None:
            return self._browser
        async with self._lock:
            if self._browser is not None:
                return self._browser

            self._playwright = await self._playwright_factory().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=list(_LAUNCH_ARGS),
            )
            log.info("evasion_browser_started", headless=self._headless)
            return self._browser

    async def cleanup(self) -> None:
        """Close browser and Playwright (idempotent)."""
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def _new_context(self, fingerprint: Fingerprint) -> BrowserContext:
        browser = await self._ensure_browser()
        context = await browser.new_context(
            user_agent=fingerprint.user_agent,
            viewport=fingerprint.viewport,
            screen={
                "width": fingerprint.screen_width,
                "height": fingerprint.screen_height,
            },
            locale=fingerprint.language,
            timezone_id=fingerprint.timezone,
            extra_http_headers={"Accept-Language": fingerprint.accept_language},
        )
        try:
            # Stealth first: the fingerprint shims registered after it win.
            await Stealth().apply_stealth_async(context)
            await context.add_init_script(build_init_script(fingerprint, self._rng))
            await context.route("**/*", _block_resources)
        except BaseException:
            await context.close()
            raise
        return context

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def session(self, fingerprint: Fingerprint) -> AsyncIterator[EvasionSession]:
        """Open a session for *fingerprint*; it is torn down on every exit."""
        async with self._semaphore:
            context = await self._new_context(fingerprint)
            self._active += 1
            log.debug("evasion_session_opened", active=self._active)
            try:
                page = await context.new_page()
                page.set_default_timeout(self._timeout_ms)
                yield EvasionSession(
                    context,
                    page,
                    fingerprint,
                    behavior=HumanBehaviorSimulator(
                        random.Random(self._rng.getrandbits(64))
                    ),
                    timeout_ms=self._timeout_ms,
                    settle_seconds=self._settle_seconds,
                    throttler=self._throttler,
                )
            finally:
                self._active -= 1
                try:
                    await context.close()
                except Exception:  # noqa: BLE001
                    log.debug("evasion_context_close_failed", exc_info=True)
                log.debug("evasion_session_closed", active=self._active)

    async def with_session(
        self,
        fingerprint: Fingerprint,
        fn: Callable[[EvasionSession], Awaitable[T]],
    ) -> T:
        """Run *fn* inside a session for *fingerprint* and return its result."""
        async with self.session(fingerprint) as session:
            return await fn(session)
