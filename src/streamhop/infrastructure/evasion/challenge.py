"""Shared bot-challenge / block detection.

Centralises the markers so that the HTTP fetcher, the navigator and the
browser session agree on what a challenge page looks like.
"""

from __future__ import annotations

CHALLENGE_MARKERS: tuple[str, ...] = (
    "Just a moment",
    "challenge-platform",
    "cf-error-details",
    "Attention Required",
    "cf-turnstile",
)

# Titles shown by interstitials while the challenge script runs.
CHALLENGE_TITLES: tuple[str, ...] = tuple(
    m for m in CHALLENGE_MARKERS if " " in m or m[0].isupper()
)

# Frame-ancestry checks some embeds render instead of the player.
FRAME_BLOCK_MARKERS: tuple[str, ...] = (
    "sandboxed",
    "Sandbox not allowed",
    "Please disable sandbox",
)


def has_challenge_markers(html: str) -> bool:
    """Return *True* when *html* contains challenge or frame-block markup."""
    return any(marker in html for marker in CHALLENGE_MARKERS) or any(
        marker in html for marker in FRAME_BLOCK_MARKERS
    )


def is_challenge_page(status_code: int, html: str) -> bool:
    """Return *True* when *status_code* + *html* indicate a challenge/block.

    Cloudflare uses several block types:
    - JS challenge: 503 + "Just a moment" / "challenge-platform"
    - WAF block:    403 + "Attention Required" / "cf-error-details"
    - Turnstile:    403/503 + "cf-turnstile"
    """
    if status_code not in (403, 503):
        return False
    return any(marker in html for marker in CHALLENGE_MARKERS)


CHALLENGE_PROBE_JS = """
() => {
    const title = document.title || "";
    const text = document.body ? document.body.innerText || "" : "";
    return Boolean(
        document.querySelector("[data-sitekey], .cf-turnstile, #challenge-form")
        || /just a moment|attention required/i.test(title)
        || (text.length < 2000 && /ray id/i.test(text))
    );
}
"""
