from __future__ import annotations

from .behavior import BehaviorProfile, HumanBehaviorSimulator, bezier_path
from .challenge import CHALLENGE_MARKERS, has_challenge_markers, is_challenge_page
from .engine import AntiBotEvasionEngine
from .network import ResponseStream, is_manifest_response
from .scripts import build_init_script, storage_seed
from .session import PLAY_SELECTORS, EvasionSession

__all__ = [
    "CHALLENGE_MARKERS",
    "PLAY_SELECTORS",
    "AntiBotEvasionEngine",
    "BehaviorProfile",
    "EvasionSession",
    "HumanBehaviorSimulator",
    "ResponseStream",
    "bezier_path",
    "build_init_script",
    "has_challenge_markers",
    "is_challenge_page",
    "is_manifest_response",
    "storage_seed",
]
