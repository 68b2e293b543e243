"""Synthetic browser identities for automation sessions.

Every attribute of a generated :class:`Fingerprint` is drawn from a profile
that agrees with the user agent's operating system: a macOS user agent gets
``MacIntel``, Apple GPU strings and a Retina-era screen, a Windows one gets
``Win32`` and ANGLE/Direct3D renderers, and so on.  Mixing attributes across
profiles is itself a detection signal.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

import structlog

from streamhop.domain.entities.resolution import Fingerprint

log = structlog.get_logger(__name__)

CHROME_MAJOR_VERSIONS: tuple[int, ...] = tuple(range(120, 133))


@dataclass(frozen=True)
class _OsProfile:
    ua_token: str
    platform: str
    weight: float
    screens: tuple[tuple[int, int], ...]
    hardware_concurrency: tuple[int, ...]
    device_memory: tuple[int, ...]
    webgl: tuple[tuple[str, str], ...]


_OS_PROFILES: tuple[_OsProfile, ...] = (
    _OsProfile(
        ua_token="Windows NT 10.0; Win64; x64",
        platform="Win32",
        weight=0.8,
        screens=((1920, 1080), (1366, 768), (1536, 864), (2560, 1440), (1680, 1050)),
        hardware_concurrency=(4, 6, 8, 12, 16),
        device_memory=(4, 8, 16),
        webgl=(
            (
                "Google Inc. (NVIDIA)",
                "ANGLE (NVIDIA, NVIDIA GeForce GTX 1660 Ti "
                "Direct3D11 vs_5_0 ps_5_0, D3D11)",
            ),
            (
                "Google Inc. (Intel)",
                "ANGLE (Intel, Intel(R) UHD Graphics 630 "
                "Direct3D11 vs_5_0 ps_5_0, D3D11)",
            ),
            (
                "Google Inc. (AMD)",
                "ANGLE (AMD, AMD Radeon RX 580 Series Direct3D11 vs_5_0 ps_5_0, D3D11)",
            ),
        ),
    ),
    _OsProfile(
        ua_token="Macintosh; Intel Mac OS X 10_15_7",
        platform="MacIntel",
        weight=0.15,
        screens=((1440, 900), (1680, 1050), (1920, 1080), (2560, 1440)),
        hardware_concurrency=(8, 10, 12),
        device_memory=(8, 16),
        webgl=(
            ("Google Inc. (Apple)", "ANGLE (Apple, Apple M1, OpenGL 4.1)"),
            (
                "Google Inc. (Intel Inc.)",
                "ANGLE (Intel Inc., Intel Iris OpenGL Engine, OpenGL 4.1)",
            ),
        ),
    ),
    _OsProfile(
        ua_token="X11; Linux x86_64",
        platform="Linux x86_64",
        weight=0.05,
        screens=((1920, 1080), (1366, 768), (2560, 1440)),
        hardware_concurrency=(4, 8, 16),
        device_memory=(4, 8, 16),
        webgl=(
            (
                "Google Inc. (Intel)",
                "ANGLE (Intel, Mesa Intel(R) UHD Graphics 620 (KBL GT2), OpenGL 4.6)",
            ),
        ),
    ),
)

# Locale and time zone travel together: an en-GB browser in Chicago is rare.
_LOCALES: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (
        ("en-US", "en"),
        (
            "America/New_York",
            "America/Chicago",
            "America/Denver",
            "America/Los_Angeles",
            "America/Phoenix",
            "America/Detroit",
        ),
    ),
    (("en-US", "en", "es"), ("America/Los_Angeles", "America/Phoenix")),
    (("en-GB", "en"), ("Europe/London",)),
    (("en-CA", "en"), ("America/Toronto", "America/Vancouver")),
    (("en-AU", "en"), ("Australia/Sydney", "Australia/Melbourne")),
    (("en-US", "en", "fr"), ("Europe/Paris",)),
    (("en-US", "en", "de"), ("Europe/Berlin",)),
)


def build_user_agent(ua_token: str, chrome_major: int) -> str:
    return (
        f"Mozilla/5.0 ({ua_token}) AppleWebKit/537.36 (KHTML, like Gecko) "
        f"Chrome/{chrome_major}.0.0.0 Safari/537.36"
    )


class FingerprintPool:
    """Stateless generator of consistent :class:`Fingerprint` tuples.

    Args:
        rng: Random source; inject a seeded ``random.Random`` for
            reproducible identities in tests.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.SystemRandom()

    def generate(self) -> Fingerprint:
        rng = self._rng
        profile = rng.choices(
            _OS_PROFILES, weights=[p.weight for p in _OS_PROFILES], k=1
        )[0]
        languages, timezones = rng.choice(_LOCALES)
        width, height = rng.choice(profile.screens)
        vendor, renderer = rng.choice(profile.webgl)

        fingerprint = Fingerprint(
            user_agent=build_user_agent(
                profile.ua_token, rng.choice(CHROME_MAJOR_VERSIONS)
            ),
            platform=profile.platform,
            language=languages[0],
            languages=languages,
            hardware_concurrency=rng.choice(profile.hardware_concurrency),
            device_memory=rng.choice(profile.device_memory),
            screen_width=width,
            screen_height=height,
            timezone=rng.choice(timezones),
            webgl_vendor=vendor,
            webgl_renderer=renderer,
        )
        log.debug(
            "fingerprint_generated",
            platform=fingerprint.platform,
            screen=f"{width}x{height}",
            timezone=fingerprint.timezone,
        )
        return fingerprint

    __call__ = generate
