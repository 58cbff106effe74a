"""Third-party stream provider adapters."""

from .catalog import CatalogScrapeProvider
from .feed_api import FeedApiProvider
from .gate_bypass import GateBypassProvider
from .inline import InlineSourcesProvider
from .multi_server import MultiServerProvider
from .registry import ProviderRegistry, build_provider_registry
from .secondary import SecondaryEmbedProvider

__all__ = [
    "CatalogScrapeProvider",
    "FeedApiProvider",
    "GateBypassProvider",
    "InlineSourcesProvider",
    "MultiServerProvider",
    "ProviderRegistry",
    "SecondaryEmbedProvider",
    "build_provider_registry",
]
