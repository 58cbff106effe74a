from .cache import CachePort
from .provider import ProviderPort
from .resolution_store import (
    FailureStorePort,
    ResolutionCachePort,
    ResolutionLogPort,
)

__all__ = [
    "CachePort",
    "FailureStorePort",
    "ProviderPort",
    "ResolutionCachePort",
    "ResolutionLogPort",
]
