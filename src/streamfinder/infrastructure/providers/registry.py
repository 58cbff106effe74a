"""Provider registry: ranked, config-driven set of provider adapters."""

from __future__ import annotations

from typing import Callable, Iterable

import httpx
import structlog

from streamfinder.domain.exceptions import UnknownProviderError
from streamfinder.domain.ports.provider import ProviderPort
from streamfinder.infrastructure.config.schema import DiscoveryConfig, ProviderConfig
from streamfinder.infrastructure.providers.catalog import CatalogScrapeProvider
from streamfinder.infrastructure.providers.feed_api import FeedApiProvider
from streamfinder.infrastructure.providers.gate_bypass import GateBypassProvider
from streamfinder.infrastructure.providers.inline import InlineSourcesProvider
from streamfinder.infrastructure.providers.multi_server import MultiServerProvider
from streamfinder.infrastructure.providers.secondary import SecondaryEmbedProvider
from streamfinder.infrastructure.providers.slugs import SlugDiscovery

log = structlog.get_logger(__name__)

_SIMPLE_PROVIDERS: dict[str, Callable[..., ProviderPort]] = {
    InlineSourcesProvider.id: InlineSourcesProvider,
    MultiServerProvider.id: MultiServerProvider,
    GateBypassProvider.id: GateBypassProvider,
    FeedApiProvider.id: FeedApiProvider,
    SecondaryEmbedProvider.id: SecondaryEmbedProvider,
}


class ProviderRegistry:
    """Providers ordered by ascending priority (ties keep insertion order)."""

    def __init__(self, providers: Iterable[ProviderPort]) -> None:
        self._providers = sorted(providers, key=lambda p: p.priority)
        ids = [p.id for p in self._providers]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate provider ids: {ids}")

    def ranked(self) -> list[ProviderPort]:
        return list(self._providers)

    def ids(self) -> list[str]:
        return [p.id for p in self._providers]

    def get(self, provider_id: str) -> ProviderPort:
        for provider in self._providers:
            if provider.id == provider_id:
                return provider
        raise UnknownProviderError(provider_id)

    def __contains__(self, provider_id: object) -> bool:
        return any(p.id == provider_id for p in self._providers)

    def __len__(self) -> int:
        return len(self._providers)


def _build_catalog(
    http_client: httpx.AsyncClient,
    config: ProviderConfig,
    discovery: DiscoveryConfig,
) -> CatalogScrapeProvider:
    slug_discovery = None
    if config.listing_url:
        slug_discovery = SlugDiscovery(
            http_client=http_client,
            listing_url=config.listing_url,
            username=config.username,
            password=config.password,
            batch_size=discovery.batch_size,
            max_pages=discovery.max_pages,
        )
    return CatalogScrapeProvider(
        http_client=http_client, config=config, discovery=slug_discovery
    )


def build_provider_registry(
    *,
    http_client: httpx.AsyncClient,
    providers: dict[str, ProviderConfig],
    discovery: DiscoveryConfig,
) -> ProviderRegistry:
    """Instantiate every enabled, configured provider.

    A provider is skipped when disabled or when it has no base URL.
    """
    built: list[ProviderPort] = []
    for provider_id, cfg in providers.items():
        if not cfg.enabled:
            log.info("provider_disabled_by_config", provider=provider_id)
            continue
        if not cfg.all_base_urls:
            log.warning("provider_not_configured", provider=provider_id)
            continue

        if provider_id == CatalogScrapeProvider.id:
            built.append(_build_catalog(http_client, cfg, discovery))
        elif provider_id in _SIMPLE_PROVIDERS:
            factory = _SIMPLE_PROVIDERS[provider_id]
            built.append(factory(http_client=http_client, config=cfg))
        else:
            log.warning("provider_unknown", provider=provider_id)

    registry = ProviderRegistry(built)
    log.info("provider_registry_built", providers=registry.ids())
    return registry
