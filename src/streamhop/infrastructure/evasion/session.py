"""One browser automation session bound to a single fingerprint."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from playwright.async_api import BrowserContext, ElementHandle, Frame, Page, Response
from playwright.async_api import Error as PlaywrightError

from streamhop.domain.entities.resolution import Fingerprint
from streamhop.domain.exceptions import AntiBotChallengeError
from streamhop.infrastructure.common.rate_limiter import RequestThrottler
from streamhop.infrastructure.evasion.behavior import HumanBehaviorSimulator
from streamhop.infrastructure.evasion.challenge import (
    CHALLENGE_PROBE_JS,
    has_challenge_markers,
)
from streamhop.infrastructure.evasion.network import ResponseStream

log = structlog.get_logger(__name__)

# Most specific first: cloudnestra's own trigger, then generic player buttons.
PLAY_SELECTORS: tuple[str, ...] = (
    "#pl_but",
    ".fas.fa-play",
    "button#pl_but",
    "div#pl_but",
    'button[class*="play"]',
    ".play-button",
    ".video-play-button",
    '[data-testid*="play"]',
    'button[aria-label*="play" i]',
    'button[title*="play" i]',
)

_VISIBLE_JS = """
(el) => {
    const style = window.getComputedStyle(el);
    return style.display !== "none"
        && style.visibility !== "hidden"
        && Number(style.opacity || "1") > 0;
}
"""


class EvasionSession:
    """Page plus context of one automation session.

    Created by :class:`AntiBotEvasionEngine`; the engine owns teardown.
    """

    def __init__(
        self,
        context: BrowserContext,
        page: Page,
        fingerprint: Fingerprint,
        *,
        behavior: HumanBehaviorSimulator,
        timeout_ms: int,
        settle_seconds: float,
        throttler: RequestThrottler | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.context = context
        self.page = page
        self.fingerprint = fingerprint
        self._behavior = behavior
        self._timeout_ms = timeout_ms
        self._settle_seconds = settle_seconds
        self._throttler = throttler
        self._sleep = sleep

    def responses(self, maxsize: int = 32) -> ResponseStream:
        """Subscribe to this page's playlist responses."""
        return ResponseStream(self.page, maxsize=maxsize)

    async def goto(self, url: str, *, referer: str | None = None) -> Response | None:
        if self._throttler is not None:
            await self._throttler.acquire(url)
        return await self.page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=self._timeout_ms,
            referer=referer,
        )

    async def content(self, *, include_frames: bool = True) -> str:
        """Main document HTML followed by every child frame's HTML."""
        parts = [await self.page.content()]
        if include_frames:
            for frame in self.page.frames:
                if frame is self.page.main_frame:
                    continue
                try:
                    parts.append(await frame.content())
                except PlaywrightError:
                    # Frame detached while we were reading it.
                    continue
        return "\n".join(parts)

    async def is_challenged(self) -> bool:
        """Challenge markup in the DOM or an interstitial title."""
        try:
            html = await self.page.content()
            if has_challenge_markers(html):
                return True
            return bool(await self.page.evaluate(CHALLENGE_PROBE_JS))
        except PlaywrightError:
            return False

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    async def find_play_trigger(
        self,
    ) -> tuple[Frame, ElementHandle, dict[str, float]] | None:
        """First visible play trigger in the page or any child frame."""
        for frame in self.page.frames:
            for selector in PLAY_SELECTORS:
                try:
                    handles = await frame.query_selector_all(selector)
                except PlaywrightError:
                    break
                for handle in handles:
                    try:
                        box = await handle.bounding_box()
                        if not box or box["width"] <= 0 or box["height"] <= 0:
                            continue
                        if not await handle.evaluate(_VISIBLE_JS):
                            continue
                    except PlaywrightError:
                        continue
                    log.debug("play_trigger_found", selector=selector, frame=frame.url)
                    return frame, handle, box
        return None

    async def _settled(
        self,
        frames_before: int,
        url_before: str,
        seen_before: int,
        stream: ResponseStream | None,
    ) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settle_seconds
        while True:
            if len(self.page.frames) > frames_before or self.page.url != url_before:
                return True
            if stream is not None and stream.seen > seen_before:
                return True
            if loop.time() >= deadline:
                return False
            await self._sleep(0.25)

    async def interact(self, stream: ResponseStream | None = None) -> bool:
        """Behave like a viewer, press play and wait for the next hop.

        Returns ``False`` when the page has no play trigger (nothing to do).

        Raises:
            AntiBotChallengeError: The trigger was pressed but nothing
                materialised, or challenge markup appeared afterwards.
        """
        await self._behavior.simulate_presence(self.page, self.fingerprint.viewport)

        trigger = await self.find_play_trigger()
        if trigger is None:
            return False
        _frame, _handle, box = trigger

        frames_before = len(self.page.frames)
        url_before = self.page.url
        seen_before = stream.seen if stream is not None else 0
        await self._behavior.click(self.page, box)

        settled = await self._settled(frames_before, url_before, seen_before, stream)
        if await self.is_challenged():
            raise AntiBotChallengeError("challenge markup after play interaction")
        if not settled:
            raise AntiBotChallengeError("play interaction produced no new content")
        log.debug("play_interaction_settled", frames=len(self.page.frames))
        return True
