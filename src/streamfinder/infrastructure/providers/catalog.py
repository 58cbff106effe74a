"""Catalog-scrape provider: title pages located by slug.

The site publishes one page per title under a slug. Slugs are guessed
from the title hint first; when no guess lands, the listing API is paged
through by ``SlugDiscovery``. Series pages list their episodes in one of
several layouts, tried in order by ``find_episode_url``.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urljoin, urlparse

import httpx

from streamfinder.domain.entities.resolution import (
    Deadline,
    Found,
    NotFound,
    ResolutionKey,
    ResolutionOutcome,
)
from streamfinder.infrastructure.common.html_selectors import (
    extract_all_attrs,
    parse_html,
    select_items,
)
from streamfinder.infrastructure.config.schema import ProviderConfig
from streamfinder.infrastructure.providers.base import HttpxProviderBase
from streamfinder.infrastructure.providers.extractor import classify, is_media_url
from streamfinder.infrastructure.providers.slugs import SlugDiscovery, slugify

_SEASON_PARAMS = ("season", "temporada", "s")
_EPISODE_PARAMS = ("episode", "episodio", "ep", "e")
_PLAYER_ATTRS = ("data-src", "data-url", "src", "href")


def _query_int(query: dict[str, list[str]], names: tuple[str, ...]) -> int | None:
    for name in names:
        values = query.get(name)
        if values and values[0].isdigit():
            return int(values[0])
    return None


def _by_query(links: list[str], season: int, episode: int) -> str | None:
    for href in links:
        query = parse_qs(urlparse(href).query)
        if (
            _query_int(query, _SEASON_PARAMS) == season
            and _query_int(query, _EPISODE_PARAMS) == episode
        ):
            return href
    return None


def _by_path(links: list[str], season: int, episode: int) -> str | None:
    patterns = (
        rf"/0?{season}-temporada/0?{episode}-episodio(?:[/?#]|$)",
        rf"-s0?{season}e0?{episode}(?:\D|$)",
        rf"/season-0?{season}/episode-0?{episode}(?:[/?#]|$)",
    )
    for pattern in patterns:
        regex = re.compile(pattern, re.IGNORECASE)
        for href in links:
            if regex.search(urlparse(href).path + "?" + urlparse(href).query):
                return href
    return None


def _by_data_attrs(html: str, page_url: str, season: int, episode: int) -> str | None:
    soup = parse_html(html)
    for tag in select_items(soup, "[data-season][data-episode]"):
        try:
            s = int(str(tag.get("data-season")))
            e = int(str(tag.get("data-episode")))
        except ValueError:
            continue
        if (s, e) != (season, episode):
            continue
        for attr in _PLAYER_ATTRS:
            value = tag.get(attr)
            if value:
                return urljoin(page_url, str(value).strip())
    return None


def player_refs(html: str, page_url: str) -> list[str]:
    """Every embedded player reference on the page, in document order."""
    refs = extract_all_attrs(
        parse_html(html),
        "iframe, [data-src], [data-url]",
        ("data-src", "data-url", "src"),
        base_url=page_url,
    )
    return [r for r in dict.fromkeys(refs) if r.startswith(("http://", "https://"))]


def _by_player_scan(html: str, page_url: str, season: int, episode: int) -> str | None:
    refs = player_refs(html, page_url)
    pattern = re.compile(rf"(?:^|\D)0?{season}\D{{1,12}}0?{episode}(?:\D|$)")
    for ref in refs:
        parsed = urlparse(ref)
        if pattern.search(parsed.path + "?" + parsed.query):
            return ref
    return None


def find_episode_url(html: str, page_url: str, season: int, episode: int) -> str | None:
    """Locate the episode link/player on a series page.

    Heuristics, in order: query parameters, slugged paths, data
    attributes, then any embedded player reference carrying both numbers.
    """
    soup = parse_html(html)
    links = extract_all_attrs(soup, "a[href]", ("href",), base_url=page_url)
    return (
        _by_query(links, season, episode)
        or _by_path(links, season, episode)
        or _by_data_attrs(html, page_url, season, episode)
        or _by_player_scan(html, page_url, season, episode)
    )


class CatalogScrapeProvider(HttpxProviderBase):
    """Scrapes the catalog site's own title pages."""

    id = "catalog"

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        config: ProviderConfig,
        discovery: SlugDiscovery | None = None,
    ) -> None:
        super().__init__(http_client=http_client, config=config)
        self._discovery = discovery

    def embed_url(self, key: ResolutionKey) -> str | None:
        # Title pages are full site pages, never framed.
        return None

    def _page_url(self, key: ResolutionKey, slug: str) -> str | None:
        path = self.render(self._path_template(key), key, slug=slug)
        if path is None:
            return None
        return f"{self.base_url}{path}"

    @staticmethod
    def slug_guesses(key: ResolutionKey) -> list[str]:
        if not key.title:
            return []
        guesses = [slugify(key.title, key.content_id), slugify(key.title)]
        return [g for i, g in enumerate(guesses) if g and g not in guesses[:i]]

    async def _locate_title_page(
        self, key: ResolutionKey, deadline: Deadline
    ) -> tuple[str, str] | None:
        for slug in self.slug_guesses(key):
            url = self._page_url(key, slug)
            if url is None:
                continue
            fetched = await self._fetch_html(
                url, deadline=deadline, context="slug_guess"
            )
            if fetched is not None:
                return fetched

        if self._discovery is None:
            return None
        slug = await self._discovery.discover(key.content_id, key.media_type, deadline)
        if slug is None:
            return None
        url = self._page_url(key, slug)
        if url is None:
            return None
        return await self._fetch_html(url, deadline=deadline, context="discovered_slug")

    async def _scan_players(
        self, html: str, page_url: str, deadline: Deadline
    ) -> Found | None:
        # Series pages that never name the episode: try each player in turn.
        for ref in player_refs(html, page_url):
            if deadline.expired:
                break
            if is_media_url(ref):
                return Found(url=ref, kind=classify(ref))
            fetched = await self._fetch_html(ref, deadline=deadline, context="player")
            if fetched is None:
                continue
            player_url, player_html = fetched
            found = await self._extract_from_page(
                player_html, player_url, deadline=deadline
            )
            if found is not None:
                return found
        return None

    async def _resolve(
        self, key: ResolutionKey, deadline: Deadline
    ) -> ResolutionOutcome:
        if not self.base_url:
            return NotFound("catalog base_url not configured")

        page = await self._locate_title_page(key, deadline)
        if page is None:
            return NotFound("title page not found")
        page_url, html = page

        if key.is_episode:
            assert key.season is not None and key.episode is not None
            target = find_episode_url(html, page_url, key.season, key.episode)
            if target is None:
                found = await self._scan_players(html, page_url, deadline)
                return found or NotFound("episode not listed on series page")
            if is_media_url(target):
                return Found(url=target, kind=classify(target))
            fetched = await self._fetch_html(
                target, deadline=deadline, context="episode"
            )
            if fetched is None:
                return NotFound("episode page unreachable")
            page_url, html = fetched

        found = await self._extract_from_page(html, page_url, deadline=deadline)
        return found or NotFound("no stream on title page")
