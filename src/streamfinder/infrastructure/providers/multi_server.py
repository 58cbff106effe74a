"""Embed provider fronting several upstream servers.

The embed page carries the internal content id (``data-id``) and the
server list (``data-server``); configured ``server_ids`` override the
scraped list. Per server: an API call keyed by internal id and server
id names a target, which redirects to the server's player page. Player
pages either embed the stream or reference a video id that a second,
per-player API turns into the stream URL. Servers behind a login/captcha
gate are skipped.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from streamfinder.domain.entities.resolution import (
    Deadline,
    Found,
    NotFound,
    ResolutionKey,
    ResolutionOutcome,
)
from streamfinder.infrastructure.common.html_selectors import (
    parse_html,
    select_items,
)
from streamfinder.infrastructure.providers.base import HttpxProviderBase
from streamfinder.infrastructure.providers.extractor import (
    classify,
    extract_stream_url,
    is_media_url,
    pick_stream_url,
)
from streamfinder.infrastructure.providers.gate import is_gate_page

_VIDEO_ID_RE = re.compile(r"""data-(?:hash|video-id|id)\s*=\s*["']([\w-]{4,})["']""")


def parse_embed_page(html: str) -> tuple[str | None, list[str]]:
    """Internal content id and server ids (document order, deduplicated)."""
    soup = parse_html(html)
    internal_id: str | None = None
    for tag in select_items(soup, "[data-id]", "[data-content-id]"):
        value = str(tag.get("data-id") or tag.get("data-content-id") or "").strip()
        if value:
            internal_id = value
            break
    servers: list[str] = []
    for tag in select_items(soup, "[data-server]", "[data-server-id]"):
        value = str(tag.get("data-server") or tag.get("data-server-id") or "").strip()
        if value and value not in servers:
            servers.append(value)
    return internal_id, servers


class MultiServerProvider(HttpxProviderBase):
    id = "multiserver"

    async def _resolve(
        self, key: ResolutionKey, deadline: Deadline
    ) -> ResolutionOutcome:
        if not self._config.api_url:
            return NotFound("multiserver api_url not configured")
        embed = self.embed_url(key)
        if embed is None:
            return NotFound("no embed url for key")

        page = await self._safe_fetch(
            embed, deadline=deadline, context="embed", raise_for_status=False
        )
        if page is None or page.status_code >= 400:
            return NotFound("embed page unavailable")
        if is_gate_page(page.status_code, page.text, str(page.url)):
            return NotFound("embed page gated")

        internal_id, listed = parse_embed_page(page.text)
        if internal_id is None:
            return NotFound("no content id on embed page")
        servers = list(self._config.server_ids) or listed
        if not servers:
            return NotFound("no servers listed on embed page")
        self._log.debug(
            "multiserver_embed_parsed", internal_id=internal_id, servers=servers
        )

        for server in servers:
            if deadline.expired:
                break
            found = await self._try_server(key, internal_id, server, deadline)
            if found is not None:
                return found
        return NotFound("no server produced a stream")

    async def _try_server(
        self, key: ResolutionKey, internal_id: str, server: str, deadline: Deadline
    ) -> Found | None:
        api_url = self.render(
            self._config.api_url or "", key, id=internal_id, server=server
        )
        if api_url is None:
            return None
        resp = await self._safe_fetch(
            api_url, deadline=deadline, context=f"server_api:{server}"
        )
        if resp is None:
            return None
        target = pick_stream_url(self._safe_parse_json(resp, context=server))
        if target is None:
            self._log.debug("multiserver_no_target", server=server)
            return None
        if is_media_url(target):
            return Found(url=target, kind=classify(target))

        referer = f"{self.base_url}/" if self.base_url else api_url
        page = await self._safe_fetch(
            target,
            deadline=deadline,
            headers={"Referer": referer},
            context=f"server_redirect:{server}",
            raise_for_status=False,
        )
        if page is None:
            return None
        final_url = str(page.url)
        if is_media_url(final_url):
            return Found(url=final_url, kind=classify(final_url))
        if is_gate_page(page.status_code, page.text, final_url):
            self._log.info("multiserver_gate_page", server=server, url=final_url)
            return None
        if page.status_code >= 400:
            return None

        found = extract_stream_url(page.text)
        if found is not None:
            return found
        return await self._secondary_api(final_url, page.text, deadline)

    async def _secondary_api(
        self, player_url: str, html: str, deadline: Deadline
    ) -> Found | None:
        template = self._config.secondary_api_path
        if not template:
            return None
        match = _VIDEO_ID_RE.search(html)
        if match:
            video_id = match.group(1)
        else:
            video_id = urlparse(player_url).path.rstrip("/").rsplit("/", 1)[-1]
        if not video_id:
            return None

        parsed = urlparse(player_url)
        api_url = f"{parsed.scheme}://{parsed.netloc}{template.format(hash=video_id)}"
        resp = await self._safe_fetch(
            api_url,
            deadline=deadline,
            method="POST",
            data={"hash": video_id, "r": f"{self.base_url}/"},
            headers={"Referer": player_url, "X-Requested-With": "XMLHttpRequest"},
            context="secondary_api",
        )
        if resp is None:
            return None
        url = pick_stream_url(self._safe_parse_json(resp, context="secondary_api"))
        if url is None:
            return None
        return Found(url=url, kind=classify(url))
