"""Tests for the provider registry and its config-driven builder."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
import pytest

from streamfinder.domain.exceptions import UnknownProviderError
from streamfinder.infrastructure.config.schema import DiscoveryConfig, ProviderConfig
from streamfinder.infrastructure.providers import (
    CatalogScrapeProvider,
    ProviderRegistry,
    build_provider_registry,
)


@dataclass
class _Stub:
    id: str
    priority: int
    timeout: float = 1.0


class TestProviderRegistry:
    def test_ranked_by_priority(self) -> None:
        stubs = [_Stub("b", 2), _Stub("a", 1), _Stub("c", 3)]
        registry = ProviderRegistry(stubs)  # type: ignore[arg-type]
        assert registry.ids() == ["a", "b", "c"]
        assert len(registry) == 3
        assert "b" in registry

    def test_get_unknown(self) -> None:
        registry = ProviderRegistry([_Stub("a", 1)])  # type: ignore[list-item]
        with pytest.raises(UnknownProviderError):
            registry.get("zzz")

    def test_duplicate_ids(self) -> None:
        with pytest.raises(ValueError, match="Duplicate"):
            ProviderRegistry([_Stub("a", 1), _Stub("a", 2)])  # type: ignore[list-item]


class TestBuildProviderRegistry:
    async def test_skips_disabled_and_unconfigured(self) -> None:
        providers = {
            "catalog": ProviderConfig(
                base_url="https://catalog.example",
                listing_url="https://catalog.example/api/list",
                priority=1,
            ),
            "inline": ProviderConfig(base_url="https://inline.example", enabled=False),
            "feedapi": ProviderConfig(priority=5),
            "secondary": ProviderConfig(base_url="https://second.example", priority=6),
            "mystery": ProviderConfig(base_url="https://mystery.example"),
        }

        async with httpx.AsyncClient() as client:
            registry = build_provider_registry(
                http_client=client, providers=providers, discovery=DiscoveryConfig()
            )

        assert registry.ids() == ["catalog", "secondary"]
        assert isinstance(registry.get("catalog"), CatalogScrapeProvider)

    async def test_priority_from_config(self) -> None:
        providers = {
            "secondary": ProviderConfig(base_url="https://second.example", priority=1),
            "inline": ProviderConfig(base_url="https://inline.example", priority=9),
        }

        async with httpx.AsyncClient() as client:
            registry = build_provider_registry(
                http_client=client, providers=providers, discovery=DiscoveryConfig()
            )

        assert registry.ids() == ["secondary", "inline"]
        assert registry.get("inline").timeout == 8.0
