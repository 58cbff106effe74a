from .interception import (
    VIDEO_SOURCE_MESSAGE,
    InterceptedSource,
    InterceptionState,
)
from .resolution import (
    ALL_PROVIDERS,
    DEFAULT_AUDIO_TRACK,
    NO_PROVIDER,
    CacheEntry,
    Deadline,
    FailureRecord,
    Found,
    LogEntry,
    MediaType,
    NotFound,
    ProxyFallback,
    ResolutionKey,
    ResolutionOutcome,
    ResolutionResult,
    StreamKind,
)

__all__ = [
    "ALL_PROVIDERS",
    "CacheEntry",
    "DEFAULT_AUDIO_TRACK",
    "Deadline",
    "FailureRecord",
    "Found",
    "InterceptedSource",
    "InterceptionState",
    "LogEntry",
    "MediaType",
    "NO_PROVIDER",
    "NotFound",
    "ProxyFallback",
    "ResolutionKey",
    "ResolutionOutcome",
    "ResolutionResult",
    "StreamKind",
    "VIDEO_SOURCE_MESSAGE",
]
