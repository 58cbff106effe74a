"""Tests for slug transliteration and catalog slug discovery."""

from __future__ import annotations

import httpx
import respx

from streamfinder.domain.entities.resolution import Deadline
from streamfinder.infrastructure.providers.slugs import (
    SLUG_MAX_LENGTH,
    SlugDiscovery,
    slugify,
)

LISTING_URL = "https://catalog.example.com/api/list"


def _page(rows: list[dict[str, object]]) -> httpx.Response:
    return httpx.Response(200, json={"data": rows})


def _filler(page: int) -> list[dict[str, object]]:
    return [{"tmdb_id": 100_000 + page, "slug": f"filler-{page}"}]


class TestSlugify:
    def test_accents_and_punctuation(self) -> None:
        assert slugify("Cidade de Deus: A Série!") == "cidade-de-deus-a-serie"

    def test_whitespace_and_hyphen_runs(self) -> None:
        assert slugify("  Homem -  Aranha  ") == "homem-aranha"

    def test_content_id_suffix(self) -> None:
        assert slugify("Fight Club", "550") == "fight-club-550"

    def test_empty_title_with_id(self) -> None:
        assert slugify("!!!", "550") == "550"

    def test_length_cap(self) -> None:
        slug = slugify("a " * 100)
        assert len(slug) <= SLUG_MAX_LENGTH
        assert not slug.endswith("-")


class TestSlugDiscovery:
    @respx.mock
    async def test_match_on_later_page(self) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            if page == 3:
                return _page([{"tmdbId": "550", "slug": "clube-da-luta"}])
            return _page(_filler(page))

        route = respx.get(LISTING_URL).mock(side_effect=_handler)

        async with httpx.AsyncClient() as client:
            discovery = SlugDiscovery(
                http_client=client, listing_url=LISTING_URL, batch_size=5
            )
            slug = await discovery.discover("550", "movie")

        assert slug == "clube-da-luta"
        assert route.calls[0].request.url.params["type"] == "movies"

    @respx.mock
    async def test_stops_at_first_empty_page(self) -> None:
        requested: list[int] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            requested.append(page)
            if page == 7:
                return _page([])
            if page == 9:
                return _page([{"tmdb_id": 1399, "slug": "game-of-thrones"}])
            return _page(_filler(page))

        respx.get(LISTING_URL).mock(side_effect=_handler)

        async with httpx.AsyncClient() as client:
            discovery = SlugDiscovery(
                http_client=client, listing_url=LISTING_URL, batch_size=5
            )
            slug = await discovery.discover("1399", "series")

        assert slug is None
        # Second batch (6..10) is fetched concurrently but nothing beyond it.
        assert max(requested) == 10

    @respx.mock
    async def test_failed_page_ends_discovery(self) -> None:
        respx.get(LISTING_URL).mock(return_value=httpx.Response(500))

        async with httpx.AsyncClient() as client:
            discovery = SlugDiscovery(
                http_client=client, listing_url=LISTING_URL, batch_size=2
            )
            assert await discovery.discover("550", "movie") is None

    @respx.mock
    async def test_page_ceiling(self) -> None:
        route = respx.get(LISTING_URL).mock(
            side_effect=lambda request: _page(
                _filler(int(request.url.params["page"]))
            )
        )

        async with httpx.AsyncClient() as client:
            discovery = SlugDiscovery(
                http_client=client,
                listing_url=LISTING_URL,
                batch_size=3,
                max_pages=4,
            )
            assert await discovery.discover("550", "movie") is None

        assert route.call_count == 4

    @respx.mock
    async def test_credentials_sent_as_query_params(self) -> None:
        route = respx.get(LISTING_URL).mock(
            return_value=_page([{"tmdb_id": "550", "slug": "fight-club"}])
        )

        async with httpx.AsyncClient() as client:
            discovery = SlugDiscovery(
                http_client=client,
                listing_url=LISTING_URL,
                username="user",
                password="secret",
                batch_size=1,
            )
            assert await discovery.discover("550", "movie") == "fight-club"

        request = route.calls[0].request
        assert request.url.params["username"] == "user"
        assert request.url.params["password"] == "secret"
        assert request.url.params["type"] == "movies"
        assert request.url.params["page"] == "1"
        assert "Authorization" not in request.headers

    @respx.mock
    async def test_matches_plain_id_key(self) -> None:
        respx.get(LISTING_URL).mock(
            return_value=_page([{"id": 550, "slug": "clube-da-luta"}])
        )

        async with httpx.AsyncClient() as client:
            discovery = SlugDiscovery(
                http_client=client, listing_url=LISTING_URL, batch_size=1
            )
            assert await discovery.discover("550", "movie") == "clube-da-luta"

    async def test_expired_deadline(self) -> None:
        async with httpx.AsyncClient() as client:
            discovery = SlugDiscovery(http_client=client, listing_url=LISTING_URL)
            deadline = Deadline(at=0.0)
            assert await discovery.discover("550", "movie", deadline) is None
