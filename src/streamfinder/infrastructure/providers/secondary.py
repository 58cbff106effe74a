"""Last-resort embed provider.

Its embed page is itself a player, so a reachable page without an
extractable stream is returned as a proxy fallback.
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


class SecondaryEmbedProvider(HttpxProviderBase):
    id = "secondary"

    async def _resolve(
        self, key: ResolutionKey, deadline: Deadline
    ) -> ResolutionOutcome:
        embed = self.embed_url(key)
        if embed is None:
            return NotFound("no embed url for key")
        fetched = await self._fetch_html(embed, deadline=deadline, context="embed")
        if fetched is None:
            return NotFound("embed page unreachable")
        page_url, html = fetched
        found = await self._extract_from_page(
            html, page_url, deadline=deadline, max_depth=1
        )
        return found or ProxyFallback(embed_url=embed)
