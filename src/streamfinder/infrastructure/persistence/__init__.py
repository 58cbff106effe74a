from .failure_store import CacheFailureRepository
from .resolution_cache import CacheResolutionRepository
from .resolution_log import CacheResolutionLogRepository

__all__ = [
    "CacheFailureRepository",
    "CacheResolutionLogRepository",
    "CacheResolutionRepository",
]
