"""Domain exceptions."""

from __future__ import annotations


class StreamfinderError(Exception):
    """Base class for all streamfinder errors."""


class ProviderError(StreamfinderError):
    """Raised inside a provider when its site answers with something unusable."""


class UnknownProviderError(StreamfinderError):
    """Raised when a provider id is not known to the registry."""


class ProxyTargetNotAllowedError(StreamfinderError):
    """Raised when the interception proxy is asked for a non-allow-listed URL."""
