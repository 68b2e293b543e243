"""Init scripts installed into every automation context before navigation.

Three shims, rendered into one script so they run in order on each new
document (frames included):

1. frame sandbox widening + "not embedded" ancestry,
2. navigator/screen/WebGL overrides matching the active fingerprint,
3. local/session storage seeded with plausible player preferences.
"""

from __future__ import annotations

import json
import random
import time
from datetime import datetime, timedelta, timezone
from typing import Any

from streamhop.domain.entities.resolution import Fingerprint

SANDBOX_ALLOW = (
    "allow-same-origin allow-scripts allow-forms allow-popups "
    "allow-pointer-lock allow-top-navigation"
)

SANDBOX_BYPASS_JS = """
(() => {
    const ALLOW = %(allow)s;
    const widen = (el) => {
        const setAttr = el.setAttribute;
        el.setAttribute = function (name, value) {
            if (String(name).toLowerCase() === "sandbox") {
                return setAttr.call(this, name, ALLOW);
            }
            return setAttr.call(this, name, value);
        };
        return el;
    };
    const createElement = Document.prototype.createElement;
    Document.prototype.createElement = function (tagName, options) {
        const el = createElement.call(this, tagName, options);
        return String(tagName).toLowerCase() === "iframe" ? widen(el) : el;
    };
    try {
        const proto = HTMLIFrameElement.prototype;
        const desc = Object.getOwnPropertyDescriptor(proto, "sandbox");
        if (desc && desc.get) {
            Object.defineProperty(proto, "sandbox", {
                get() { return desc.get.call(this); },
                set(_value) { this.setAttribute("sandbox", ALLOW); },
                configurable: true,
            });
        }
    } catch (e) {}
    const ancestry = [
        ["parent", () => window],
        ["top", () => window],
        ["frameElement", () => null],
    ];
    for (const [prop, value] of ancestry) {
        try {
            Object.defineProperty(window, prop, { get: value, configurable: true });
        } catch (e) {}
    }
})();
"""

FINGERPRINT_JS = """
(() => {
    const fp = %(fingerprint)s;
    const define = (obj, prop, value) => {
        try {
            Object.defineProperty(obj, prop, { get: () => value, configurable: true });
        } catch (e) {}
    };
    define(Navigator.prototype, "platform", fp.platform);
    define(Navigator.prototype, "language", fp.language);
    define(Navigator.prototype, "languages", Object.freeze(fp.languages.slice()));
    define(Navigator.prototype, "hardwareConcurrency", fp.hardwareConcurrency);
    define(Navigator.prototype, "deviceMemory", fp.deviceMemory);
    define(Navigator.prototype, "maxTouchPoints", 0);
    define(Screen.prototype, "width", fp.screenWidth);
    define(Screen.prototype, "height", fp.screenHeight);
    define(Screen.prototype, "availWidth", fp.screenWidth);
    define(Screen.prototype, "availHeight", fp.screenHeight - 40);
    define(Screen.prototype, "colorDepth", fp.colorDepth);
    define(Screen.prototype, "pixelDepth", fp.colorDepth);
    const patchWebGL = (proto) => {
        if (!proto) return;
        const getParameter = proto.getParameter;
        proto.getParameter = function (param) {
            if (param === 37445) return fp.webglVendor;
            if (param === 37446) return fp.webglRenderer;
            return getParameter.call(this, param);
        };
    };
    patchWebGL(window.WebGLRenderingContext && WebGLRenderingContext.prototype);
    patchWebGL(window.WebGL2RenderingContext && WebGL2RenderingContext.prototype);
    const resolved = Intl.DateTimeFormat.prototype.resolvedOptions;
    Intl.DateTimeFormat.prototype.resolvedOptions = function () {
        const options = resolved.call(this);
        options.timeZone = fp.timezone;
        return options;
    };
})();
"""

STORAGE_SEED_JS = """
(() => {
    const seed = %(seed)s;
    const apply = (storage, entries) => {
        for (const [key, value] of Object.entries(entries)) {
            try { storage.setItem(key, value); } catch (e) {}
        }
    };
    try { apply(window.localStorage, seed.local); } catch (e) {}
    try {
        apply(window.sessionStorage, Object.assign({}, seed.session, {
            page_load_time: String(Date.now()),
            referrer: document.referrer || "direct",
        }));
    } catch (e) {}
})();
"""


def fingerprint_payload(fingerprint: Fingerprint) -> dict[str, Any]:
    return {
        "platform": fingerprint.platform,
        "language": fingerprint.language,
        "languages": list(fingerprint.languages or (fingerprint.language,)),
        "hardwareConcurrency": fingerprint.hardware_concurrency,
        "deviceMemory": fingerprint.device_memory,
        "screenWidth": fingerprint.screen_width,
        "screenHeight": fingerprint.screen_height,
        "colorDepth": fingerprint.color_depth,
        "webglVendor": fingerprint.webgl_vendor,
        "webglRenderer": fingerprint.webgl_renderer,
        "timezone": fingerprint.timezone,
    }


def storage_seed(
    fingerprint: Fingerprint,
    rng: random.Random,
    *,
    now: datetime | None = None,
) -> dict[str, dict[str, str]]:
    """Preference keys a returning viewer's browser would carry."""
    now = now or datetime.now(timezone.utc)
    last_visit = now - timedelta(seconds=rng.uniform(3600, 7 * 24 * 3600))
    quality = "auto" if rng.random() > 0.7 else rng.choice(("720p", "1080p"))
    local = {
        "pljssubtitle": "English",
        "subtitle_language": fingerprint.language.split("-")[0],
        "preferred_subtitle_lang": "eng",
        "subtitle_enabled": "true",
        "subtitle_size": "large" if rng.random() > 0.7 else "medium",
        "player_volume": f"{0.6 + rng.random() * 0.4:.1f}",
        "player_quality": quality,
        "player_theme": rng.choice(("dark", "light")),
        "player_autoplay": "true" if rng.random() > 0.3 else "false",
        "player_muted": "false",
        "timezone": fingerprint.timezone,
        "screen_resolution": f"{fingerprint.screen_width}x{fingerprint.screen_height}",
        "platform": fingerprint.platform,
        "language": fingerprint.language,
        "last_visit": last_visit.isoformat(),
        "visit_count": str(rng.randint(5, 55)),
        "cookie_consent": "accepted",
    }
    session = {
        "session_id": f"sess_{int(time.time() * 1000)}_{rng.getrandbits(32):08x}",
        "user_agent": fingerprint.user_agent,
    }
    return {"local": local, "session": session}


def build_init_script(
    fingerprint: Fingerprint,
    rng: random.Random | None = None,
) -> str:
    """Render all shims for *fingerprint* into one init script."""
    rng = rng or random.Random()
    return "\n".join(
        (
            SANDBOX_BYPASS_JS % {"allow": json.dumps(SANDBOX_ALLOW)},
            FINGERPRINT_JS
            % {"fingerprint": json.dumps(fingerprint_payload(fingerprint))},
            STORAGE_SEED_JS % {"seed": json.dumps(storage_seed(fingerprint, rng))},
        )
    )
