"""Embed provider that only answers requests looking like a framed load.

Requests carry the headers a browser sends for an iframe navigation.
When the page is still gated the browser is expected to get through, so
the embed page is handed over as a proxy fallback.
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
from streamfinder.infrastructure.providers.gate import is_gate_page

IFRAME_HEADERS: dict[str, str] = {
    "Sec-Fetch-Dest": "iframe",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "cross-site",
    "Upgrade-Insecure-Requests": "1",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class GateBypassProvider(HttpxProviderBase):
    id = "gatebypass"

    async def _resolve(
        self, key: ResolutionKey, deadline: Deadline
    ) -> ResolutionOutcome:
        embed = self.embed_url(key)
        if embed is None:
            return NotFound("no embed url for key")

        headers = {**IFRAME_HEADERS, "Referer": f"{self.base_url}/"}
        resp = await self._safe_fetch(
            embed,
            deadline=deadline,
            headers=headers,
            context="embed",
            raise_for_status=False,
        )
        if resp is None:
            return NotFound("embed page unreachable")

        html = resp.text
        if is_gate_page(resp.status_code, html, str(resp.url)):
            self._log.info(
                "gatebypass_gate_detected", url=embed, status=resp.status_code
            )
            return ProxyFallback(embed_url=embed)
        if resp.status_code >= 400:
            return NotFound(f"embed page status {resp.status_code}")
        if not self._is_html(resp):
            return NotFound("embed page is not html")

        found = await self._extract_from_page(
            html, str(resp.url), deadline=deadline, headers=IFRAME_HEADERS
        )
        return found or ProxyFallback(embed_url=embed)
