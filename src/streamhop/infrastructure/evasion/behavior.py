"""Pseudo-human pointer, scroll and keyboard activity.

Uniform timing and straight pointer lines are classic automation
signatures, so every movement follows a cubic Bezier curve with randomised
control points and every step is separated by a randomised pause.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

log = structlog.get_logger(__name__)

Point = tuple[float, float]

_FOCUS_EVENTS_JS = """
() => {
    window.dispatchEvent(new Event("focus"));
    document.dispatchEvent(new Event("visibilitychange"));
    window.dispatchEvent(new Event("resize"));
}
"""


def bezier_path(
    start: Point,
    end: Point,
    steps: int,
    rng: random.Random,
    *,
    spread: float = 100.0,
) -> list[Point]:
    """Points along a cubic Bezier from *start* to *end* (both included)."""
    if steps < 1:
        return [end]
    (x0, y0), (x3, y3) = start, end
    x1 = x0 + (x3 - x0) / 3 + rng.uniform(-spread, spread)
    y1 = y0 + (y3 - y0) / 3 + rng.uniform(-spread, spread)
    x2 = x0 + 2 * (x3 - x0) / 3 + rng.uniform(-spread, spread)
    y2 = y0 + 2 * (y3 - y0) / 3 + rng.uniform(-spread, spread)

    points: list[Point] = []
    for i in range(steps + 1):
        t = i / steps
        # ease-in-out so the pointer accelerates and decelerates
        t = t * t * (3 - 2 * t)
        mt = 1 - t
        x = mt**3 * x0 + 3 * mt**2 * t * x1 + 3 * mt * t**2 * x2 + t**3 * x3
        y = mt**3 * y0 + 3 * mt**2 * t * y1 + 3 * mt * t**2 * y2 + t**3 * y3
        points.append((x, y))
    return points


@dataclass(frozen=True)
class BehaviorProfile:
    """Counts and pause ranges (seconds) for one simulation run."""

    moves: tuple[int, int] = (5, 12)
    scrolls: tuple[int, int] = (2, 5)
    tabs: tuple[int, int] = (1, 3)
    move_steps: tuple[int, int] = (8, 20)
    move_pause: tuple[float, float] = (0.1, 0.4)
    scroll_pause: tuple[float, float] = (0.3, 0.9)
    key_pause: tuple[float, float] = (0.2, 0.6)
    step_pause: tuple[float, float] = (0.005, 0.02)


class HumanBehaviorSimulator:
    """Drives a Playwright ``Page`` like a person would.

    Args:
        rng: Random source (seed it for reproducible runs).
        sleep: Awaitable sleep; tests pass a no-op.
        profile: Activity counts and pause ranges.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        profile: BehaviorProfile | None = None,
    ) -> None:
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._profile = profile or BehaviorProfile()
        self._position: Point = (0.0, 0.0)

    async def _pause(self, bounds: tuple[float, float]) -> None:
        await self._sleep(self._rng.uniform(*bounds))

    async def move_to(self, page: Any, target: Point) -> None:
        steps = self._rng.randint(*self._profile.move_steps)
        for x, y in bezier_path(self._position, target, steps, self._rng)[1:]:
            await page.mouse.move(x, y)
            await self._pause(self._profile.step_pause)
        self._position = target

    async def simulate_presence(
        self, page: Any, viewport: dict[str, int]
    ) -> dict[str, int]:
        """Random pointer paths, scrolls, tab traversal and focus events.

        Returns the counts performed (for logs and tests).
        """
        rng, profile = self._rng, self._profile
        width, height = viewport["width"], viewport["height"]

        moves = rng.randint(*profile.moves)
        for _ in range(moves):
            await self.move_to(
                page, (rng.uniform(0, width - 1), rng.uniform(0, height - 1))
            )
            await self._pause(profile.move_pause)

        scrolls = rng.randint(*profile.scrolls)
        for _ in range(scrolls):
            delta = rng.uniform(80, 250) * rng.choice((-1, 1))
            await page.mouse.wheel(0, delta)
            await self._pause(profile.scroll_pause)

        tabs = rng.randint(*profile.tabs)
        for _ in range(tabs):
            await page.keyboard.press("Tab")
            await self._pause(profile.key_pause)

        await page.evaluate(_FOCUS_EVENTS_JS)

        counts = {"moves": moves, "scrolls": scrolls, "tabs": tabs}
        log.debug("behavior_simulated", **counts)
        return counts

    async def click(self, page: Any, box: dict[str, float]) -> Point:
        """Overshoot the element, correct back onto it, then click."""
        rng = self._rng
        target = (
            box["x"] + box["width"] * rng.uniform(0.3, 0.7),
            box["y"] + box["height"] * rng.uniform(0.3, 0.7),
        )
        overshoot = (
            target[0] + rng.uniform(8, 25) * rng.choice((-1, 1)),
            target[1] + rng.uniform(5, 15) * rng.choice((-1, 1)),
        )
        await self.move_to(page, overshoot)
        await self._pause(self._profile.move_pause)
        await self.move_to(page, target)
        await self._pause(self._profile.step_pause)
        await page.mouse.click(*target)
        return target
