"""Embed provider whose player pages carry their sources inline.

The same player is served from several mirrors and under several path
conventions; every (base, path) variant is tried until one yields a
stream. A reachable page without an extractable stream is still
playable in the browser, so it becomes the proxy fallback.
"""

from __future__ import annotations

from streamfinder.domain.entities.resolution import (
    Deadline,
    NotFound,
    ProxyFallback,
    ResolutionKey,
    ResolutionOutcome,
)
from streamfinder.infrastructure.providers.base import HttpxProviderBase


class InlineSourcesProvider(HttpxProviderBase):
    id = "inline"

    def candidate_urls(self, key: ResolutionKey) -> list[str]:
        templates = [self._path_template(key), *self._config.alt_paths]
        urls: list[str] = []
        for base in self._config.all_base_urls:
            for template in templates:
                path = self.render(template, key)
                if path is None:
                    continue
                url = f"{base}{path}"
                if url not in urls:
                    urls.append(url)
        return urls

    async def _resolve(
        self, key: ResolutionKey, deadline: Deadline
    ) -> ResolutionOutcome:
        candidates = self.candidate_urls(key)
        if not candidates:
            return NotFound("no embed url for key")

        playable_page: str | None = None
        for url in candidates:
            if deadline.expired:
                break
            fetched = await self._fetch_html(
                url, deadline=deadline, context="embed_variant"
            )
            if fetched is None:
                continue
            page_url, html = fetched
            if playable_page is None:
                playable_page = url
            found = await self._extract_from_page(html, page_url, deadline=deadline)
            if found is not None:
                return found

        if playable_page is not None:
            return ProxyFallback(embed_url=playable_page)
        return NotFound("no embed variant reachable")
