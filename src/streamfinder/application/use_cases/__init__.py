from .refresh_links import RefreshLinksUseCase
from .resolve_stream import ResolveStreamUseCase
from .retry_failures import RetryFailuresUseCase

__all__ = ["RefreshLinksUseCase", "ResolveStreamUseCase", "RetryFailuresUseCase"]
