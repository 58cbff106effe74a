"""Domain entities for the client-side interception fallback."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from streamfinder.domain.entities.resolution import StreamKind

VIDEO_SOURCE_MESSAGE = "VIDEO_SOURCE"


class InterceptionState(str, Enum):
    """Lifecycle of one interception session."""

    AUDIO_SELECT = "audio-select"
    EXTRACTING = "extracting"
    CUSTOM = "custom"  # play intercepted candidates in the native player
    EMBED = "embed"  # give up and show the proxied embed page
    CLOSED = "closed"


@dataclass(frozen=True)
class InterceptedSource:
    """A media URL reported by the proxied frame."""

    url: str
    kind: StreamKind
    detected_at: datetime
