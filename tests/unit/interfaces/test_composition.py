"""Tests for composition-root helpers."""

from __future__ import annotations

from streamfinder.infrastructure.config import AppConfig
from streamfinder.interfaces.composition import proxy_allow_list


def _config() -> AppConfig:
    return AppConfig(
        providers={
            "inline": {"base_url": "https://inline.example"},
            "catalog": {
                "base_url": "https://catalog.example",
                "base_urls": ["https://mirror.catalog.example"],
            },
            "feedapi": {},
        },
        interception={"allowed_domains": ["embed.example"]},
    )


class TestProxyAllowList:
    def test_provider_hosts_added(self) -> None:
        domains = proxy_allow_list(_config(), ["inline", "catalog", "feedapi"])
        assert domains == [
            "embed.example",
            "inline.example",
            "catalog.example",
            "mirror.catalog.example",
        ]

    def test_only_registered_providers(self) -> None:
        domains = proxy_allow_list(_config(), ["inline"])
        assert domains == ["embed.example", "inline.example"]

    def test_unknown_provider_ignored(self) -> None:
        assert proxy_allow_list(_config(), ["nope"]) == ["embed.example"]

    def test_no_duplicates(self) -> None:
        config = AppConfig(
            providers={"inline": {"base_url": "https://embed.example"}},
            interception={"allowed_domains": ["embed.example"]},
        )
        assert proxy_allow_list(config, ["inline"]) == ["embed.example"]
