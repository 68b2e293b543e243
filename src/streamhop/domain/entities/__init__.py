from .resolution import (
    MANIFEST_MARKER,
    AttemptRecord,
    ChainState,
    ExtractionRequest,
    FailureClass,
    FailureReport,
    Fingerprint,
    HopResult,
    HopStage,
    MediaType,
    ProgressEvent,
    ResolutionOutcome,
    ServerCandidate,
    Strategy,
    StreamDescriptor,
    StreamType,
    SubtitleTrack,
    is_plain_manifest,
)

__all__ = [
    "MANIFEST_MARKER",
    "AttemptRecord",
    "ChainState",
    "ExtractionRequest",
    "FailureClass",
    "FailureReport",
    "Fingerprint",
    "HopResult",
    "HopStage",
    "MediaType",
    "ProgressEvent",
    "ResolutionOutcome",
    "ServerCandidate",
    "Strategy",
    "StreamDescriptor",
    "StreamType",
    "SubtitleTrack",
    "is_plain_manifest",
]
