"""Shared base class for httpx-based stream providers.

Handles what every provider repeats: URL templating from config, deadline
aware fetching with structured error logging, JSON parsing and bounded
nested-iframe following.

Lives in the *infrastructure* layer because it depends on ``httpx`` and
``structlog``; the domain only knows ``ProviderPort``, which subclasses
satisfy structurally.
"""

from __future__ import annotations

import json
import string
from typing import Any

import httpx
import structlog

from streamfinder.domain.entities.resolution import (
    Deadline,
    Found,
    NotFound,
    ResolutionKey,
    ResolutionOutcome,
)
from streamfinder.domain.exceptions import ProviderError
from streamfinder.infrastructure.common.html_selectors import iframe_urls
from streamfinder.infrastructure.config.schema import ProviderConfig
from streamfinder.infrastructure.providers.extractor import (
    classify,
    extract_stream_url,
    is_media_url,
)
from streamfinder.infrastructure.providers.gate import is_gate_page

MAX_IFRAME_DEPTH = 2

_EPISODE_FIELDS = frozenset({"season", "episode"})


def template_fields(template: str) -> set[str]:
    return {name for _, name, _, _ in string.Formatter().parse(template) if name}


class HttpxProviderBase:
    """Shared base for providers.

    Subclasses **must** set ``id`` and implement ``_resolve()``.
    Subclasses **may** override ``embed_url()``.
    """

    id: str = ""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        config: ProviderConfig,
    ) -> None:
        self._client = http_client
        self._config = config
        self._log = structlog.get_logger(f"{__name__}.{self.id}")

    # ------------------------------------------------------------------
    # ProviderPort
    # ------------------------------------------------------------------

    @property
    def priority(self) -> int:
        return self._config.priority

    @property
    def timeout(self) -> float:
        return self._config.timeout_seconds

    @property
    def base_url(self) -> str:
        bases = self._config.all_base_urls
        return bases[0] if bases else ""

    def embed_url(self, key: ResolutionKey) -> str | None:
        if not self.base_url:
            return None
        path = self.render(self._path_template(key), key)
        return f"{self.base_url}{path}" if path is not None else None

    async def resolve(
        self, key: ResolutionKey, deadline: Deadline
    ) -> ResolutionOutcome:
        try:
            return await self._resolve(key, deadline)
        except ProviderError as exc:
            self._log.info("provider_gave_up", provider=self.id, reason=str(exc))
            return NotFound(str(exc))

    async def _resolve(
        self, key: ResolutionKey, deadline: Deadline
    ) -> ResolutionOutcome:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # URL templating
    # ------------------------------------------------------------------

    def _path_template(self, key: ResolutionKey) -> str:
        if key.media_type == "series":
            return self._config.episode_path
        return self._config.movie_path

    @staticmethod
    def render(template: str, key: ResolutionKey, **extra: Any) -> str | None:
        """Fill *template* from *key*; None when it needs data the key lacks."""
        fields = template_fields(template)
        if fields & _EPISODE_FIELDS and not key.is_episode:
            return None
        if "imdb" in fields and not key.imdb_id:
            return None
        values: dict[str, Any] = {
            "id": key.content_id,
            "imdb": key.imdb_id or "",
            "type": key.media_type,
            "audio": key.audio_track,
            "season": key.season if key.season is not None else "",
            "episode": key.episode if key.episode is not None else "",
            **extra,
        }
        try:
            return template.format(**values)
        except (KeyError, IndexError, ValueError):
            return None

    # ------------------------------------------------------------------
    # Fetch helpers
    # ------------------------------------------------------------------

    async def _safe_fetch(
        self,
        url: str,
        *,
        deadline: Deadline,
        method: str = "GET",
        context: str = "",
        raise_for_status: bool = True,
        **kwargs: Any,
    ) -> httpx.Response | None:
        """Fetch *url* within what is left of *deadline*.

        Returns ``None`` on failure instead of raising.
        """
        remaining = deadline.remaining()
        if remaining <= 0:
            return None
        try:
            resp = await self._client.request(
                method, url, timeout=httpx.Timeout(remaining), **kwargs
            )
            if raise_for_status:
                resp.raise_for_status()
            return resp
        except httpx.TimeoutException:
            self._log.warning(
                "provider_fetch_timeout", provider=self.id, url=url, context=context
            )
        except httpx.HTTPStatusError as exc:
            self._log.warning(
                "provider_http_error",
                provider=self.id,
                url=url,
                status=exc.response.status_code,
                context=context,
            )
        except httpx.HTTPError as exc:
            self._log.warning(
                "provider_fetch_error",
                provider=self.id,
                url=url,
                error=str(exc),
                context=context,
            )
        return None

    def _safe_parse_json(self, response: httpx.Response, context: str = "") -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError):
            self._log.warning(
                "provider_invalid_json",
                provider=self.id,
                url=str(response.url),
                context=context,
            )
            return None

    @staticmethod
    def _is_html(response: httpx.Response) -> bool:
        ctype = response.headers.get("content-type", "").lower()
        return not ctype or "html" in ctype or "text/plain" in ctype

    async def _fetch_html(
        self,
        url: str,
        *,
        deadline: Deadline,
        headers: dict[str, str] | None = None,
        context: str = "",
        skip_gates: bool = True,
    ) -> tuple[str, str] | None:
        """``(final_url, body)`` for an HTML page, else None.

        Gate pages count as failures unless *skip_gates* is False.
        """
        resp = await self._safe_fetch(
            url, deadline=deadline, headers=headers, context=context
        )
        if resp is None or not self._is_html(resp):
            return None
        final_url = str(resp.url)
        if skip_gates and is_gate_page(resp.status_code, resp.text, final_url):
            self._log.info("provider_gate_page", provider=self.id, url=final_url)
            return None
        return final_url, resp.text

    async def _follow_iframes(
        self,
        html: str,
        page_url: str,
        *,
        deadline: Deadline,
        headers: dict[str, str] | None = None,
        max_depth: int = MAX_IFRAME_DEPTH,
        _depth: int = 1,
        _visited: set[str] | None = None,
    ) -> Found | None:
        """Search nested iframes of *html* for a stream, at most *max_depth* deep.

        Each iframe URL is fetched at most once per call tree.
        """
        visited = _visited if _visited is not None else {page_url}
        for src in iframe_urls(html, page_url):
            if src in visited:
                continue
            visited.add(src)
            if is_media_url(src):
                return Found(url=src, kind=classify(src))
            if deadline.expired:
                return None

            fetched = await self._fetch_html(
                src,
                deadline=deadline,
                headers={**(headers or {}), "Referer": page_url},
                context=f"iframe_depth_{_depth}",
            )
            if fetched is None:
                continue
            frame_url, frame_html = fetched
            found = extract_stream_url(frame_html)
            if found is not None:
                return found
            if _depth < max_depth:
                found = await self._follow_iframes(
                    frame_html,
                    frame_url,
                    deadline=deadline,
                    headers=headers,
                    max_depth=max_depth,
                    _depth=_depth + 1,
                    _visited=visited,
                )
                if found is not None:
                    return found
        return None

    async def _extract_from_page(
        self,
        html: str,
        page_url: str,
        *,
        deadline: Deadline,
        headers: dict[str, str] | None = None,
        max_depth: int = MAX_IFRAME_DEPTH,
    ) -> Found | None:
        """Inline patterns first, then nested iframes."""
        found = extract_stream_url(html)
        if found is not None:
            return found
        return await self._follow_iframes(
            html, page_url, deadline=deadline, headers=headers, max_depth=max_depth
        )
