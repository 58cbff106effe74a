"""Embed provider backed by a JSON feed keyed by content id.

Order: the embed page itself, one nested iframe, then the feed.
"""

from __future__ import annotations

from streamfinder.domain.entities.resolution import (
    Deadline,
    Found,
    NotFound,
    ProxyFallback,
    ResolutionKey,
    ResolutionOutcome,
)
from streamfinder.infrastructure.providers.base import HttpxProviderBase
from streamfinder.infrastructure.providers.extractor import classify, pick_stream_url


class FeedApiProvider(HttpxProviderBase):
    id = "feedapi"

    async def _from_feed(self, key: ResolutionKey, deadline: Deadline) -> Found | None:
        if not self._config.api_url:
            return None
        feed_url = self.render(self._config.api_url, key)
        if feed_url is None:
            return None
        resp = await self._safe_fetch(feed_url, deadline=deadline, context="feed")
        if resp is None:
            return None
        url = pick_stream_url(self._safe_parse_json(resp, context="feed"))
        if url is None:
            return None
        return Found(url=url, kind=classify(url))

    async def _resolve(
        self, key: ResolutionKey, deadline: Deadline
    ) -> ResolutionOutcome:
        embed = self.embed_url(key)
        reachable = False
        if embed is not None:
            fetched = await self._fetch_html(embed, deadline=deadline, context="embed")
            if fetched is not None:
                reachable = True
                page_url, html = fetched
                found = await self._extract_from_page(
                    html, page_url, deadline=deadline, max_depth=1
                )
                if found is not None:
                    return found

        found = await self._from_feed(key, deadline)
        if found is not None:
            return found
        if reachable and embed is not None:
            return ProxyFallback(embed_url=embed)
        return NotFound("feed and embed page produced nothing")
