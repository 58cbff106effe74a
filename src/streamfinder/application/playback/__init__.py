from .interception import InterceptionSession, normalize_origin
from .player_sources import PlayerSourceQueue, ResolveRequest

__all__ = [
    "InterceptionSession",
    "PlayerSourceQueue",
    "ResolveRequest",
    "normalize_origin",
]
