"""Catalog slugs: title transliteration and paginated slug discovery."""

from __future__ import annotations

import asyncio
import re
import unicodedata
from typing import Any

import httpx
import structlog

from streamfinder.domain.entities.resolution import Deadline, MediaType

log = structlog.get_logger(__name__)

SLUG_MAX_LENGTH = 80

_ID_KEYS: tuple[str, ...] = ("tmdb_id", "tmdbId", "id")
_ROW_WRAPPERS: tuple[str, ...] = ("data", "results", "items", "rows")
_LISTING_TYPES: dict[str, str] = {"movie": "movies", "series": "series"}


def slugify(title: str, content_id: str | None = None) -> str:
    """URL slug for *title*, optionally suffixed with ``-{content_id}``.

    Accents are stripped via NFD decomposition; anything outside
    ``[a-z0-9 -]`` is dropped and whitespace runs become one hyphen.
    """
    decomposed = unicodedata.normalize("NFD", title)
    ascii_only = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    cleaned = re.sub(r"[^a-z0-9\s-]", "", ascii_only.lower()).strip()
    slug = re.sub(r"[\s-]+", "-", cleaned)[:SLUG_MAX_LENGTH].strip("-")
    if content_id:
        return f"{slug}-{content_id}" if slug else str(content_id)
    return slug


def _rows_of(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        for wrapper in _ROW_WRAPPERS:
            if isinstance(payload.get(wrapper), list):
                payload = payload[wrapper]
                break
    if not isinstance(payload, list):
        return []
    return [row for row in payload if isinstance(row, dict)]


def _match_slug(rows: list[dict[str, Any]], external_id: str) -> str | None:
    for row in rows:
        for key in _ID_KEYS:
            value = row.get(key)
            if value is not None and str(value) == external_id:
                slug = row.get("slug")
                if isinstance(slug, str) and slug:
                    return slug
    return None


class SlugDiscovery:
    """Find a catalog slug by paging through the listing API.

    Pages are fetched ``batch_size`` at a time. The first empty (or
    failed) page, in page order, ends discovery: pages after it are not
    inspected, even those of the same batch.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        listing_url: str,
        username: str | None = None,
        password: str | None = None,
        batch_size: int = 5,
        max_pages: int = 40,
    ) -> None:
        self._client = http_client
        self._listing_url = listing_url
        # The listing API takes its credentials as query parameters.
        self._credentials: dict[str, str] = (
            {"username": username, "password": password}
            if username and password
            else {}
        )
        self._batch_size = batch_size
        self._max_pages = max_pages

    async def discover(
        self,
        external_id: str,
        media_type: MediaType,
        deadline: Deadline | None = None,
    ) -> str | None:
        page = 1
        while page <= self._max_pages:
            if deadline is not None and deadline.expired:
                log.info("slug_discovery_deadline", external_id=external_id, page=page)
                return None

            last = min(page + self._batch_size - 1, self._max_pages)
            batch = await asyncio.gather(
                *(
                    self._fetch_page(media_type, n, deadline)
                    for n in range(page, last + 1)
                )
            )
            for offset, rows in enumerate(batch):
                if not rows:
                    log.info(
                        "slug_discovery_exhausted",
                        external_id=external_id,
                        empty_page=page + offset,
                    )
                    return None
                slug = _match_slug(rows, external_id)
                if slug is not None:
                    log.info(
                        "slug_discovered",
                        external_id=external_id,
                        slug=slug,
                        page=page + offset,
                    )
                    return slug
            page = last + 1

        log.info("slug_discovery_page_ceiling", external_id=external_id)
        return None

    async def _fetch_page(
        self,
        media_type: MediaType,
        page: int,
        deadline: Deadline | None,
    ) -> list[dict[str, Any]]:
        timeout: Any = httpx.USE_CLIENT_DEFAULT
        if deadline is not None:
            if deadline.expired:
                return []
            timeout = httpx.Timeout(deadline.remaining())
        try:
            resp = await self._client.get(
                self._listing_url,
                params={
                    "type": _LISTING_TYPES[media_type],
                    "page": page,
                    **self._credentials,
                },
                timeout=timeout,
            )
            resp.raise_for_status()
            return _rows_of(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            log.warning("slug_discovery_page_error", page=page, error=str(exc))
            return []
