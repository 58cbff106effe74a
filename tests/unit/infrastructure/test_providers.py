"""Tests for the embed provider adapters (respx-mocked HTTP)."""

from __future__ import annotations

import httpx
import respx

from streamfinder.domain.entities.resolution import (
    Deadline,
    Found,
    NotFound,
    ProxyFallback,
    ResolutionKey,
)
from streamfinder.infrastructure.config.schema import ProviderConfig
from streamfinder.infrastructure.providers import (
    FeedApiProvider,
    GateBypassProvider,
    InlineSourcesProvider,
    MultiServerProvider,
    SecondaryEmbedProvider,
)
from streamfinder.infrastructure.providers.base import HttpxProviderBase
from streamfinder.infrastructure.providers.multi_server import parse_embed_page

MOVIE = ResolutionKey(content_id="603", media_type="movie")
EPISODE = ResolutionKey(content_id="1399", media_type="series", season=1, episode=2)

PLAYER_HTML = """
<html><head></head><body>
<script>
jwplayer("player").setup({
  sources: [{file: "https://cdn.example.com/hls/603/master.m3u8"}],
});
</script>
</body></html>
"""
INLINE_EMBED = "https://inline.example/embed/movie/603"
EMPTY_PLAYER_HTML = "<html><body><div id='player'></div></body></html>"


def _deadline() -> Deadline:
    return Deadline.after(5.0)


# ---------------------------------------------------------------------------
# Base helpers
# ---------------------------------------------------------------------------


class TestRender:
    def test_movie_template(self) -> None:
        path = HttpxProviderBase.render("/embed/movie/{id}", MOVIE)
        assert path == "/embed/movie/603"

    def test_episode_template(self) -> None:
        path = HttpxProviderBase.render("/embed/tv/{id}/{season}/{episode}", EPISODE)
        assert path == "/embed/tv/1399/1/2"

    def test_episode_template_without_episode(self) -> None:
        key = ResolutionKey(content_id="1399", media_type="series")
        assert HttpxProviderBase.render("/tv/{id}/{season}/{episode}", key) is None

    def test_imdb_required(self) -> None:
        assert HttpxProviderBase.render("/i/{imdb}", MOVIE) is None
        key = ResolutionKey(content_id="603", media_type="movie", imdb_id="tt0133093")
        assert HttpxProviderBase.render("/i/{imdb}", key) == "/i/tt0133093"

    def test_unknown_field(self) -> None:
        assert HttpxProviderBase.render("/x/{nope}", MOVIE) is None

    def test_extra_fields(self) -> None:
        path = HttpxProviderBase.render("/{server}/{id}", MOVIE, server="s1")
        assert path == "/s1/603"


# ---------------------------------------------------------------------------
# Inline sources
# ---------------------------------------------------------------------------


class TestInlineSourcesProvider:
    def _provider(
        self, client: httpx.AsyncClient, **cfg: object
    ) -> InlineSourcesProvider:
        config = ProviderConfig(
            base_url="https://inline.example", **cfg  # type: ignore[arg-type]
        )
        return InlineSourcesProvider(http_client=client, config=config)

    async def test_candidate_urls_cover_mirrors_and_alt_paths(self) -> None:
        async with httpx.AsyncClient() as client:
            provider = self._provider(
                client,
                base_urls=["https://mirror.example/"],
                alt_paths=["/e/{id}"],
            )
            assert provider.candidate_urls(MOVIE) == [
                "https://inline.example/embed/movie/603",
                "https://inline.example/e/603",
                "https://mirror.example/embed/movie/603",
                "https://mirror.example/e/603",
            ]

    @respx.mock
    async def test_found_inline(self) -> None:
        respx.get(INLINE_EMBED).respond(200, html=PLAYER_HTML)

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == Found(
            url="https://cdn.example.com/hls/603/master.m3u8", kind="playlist"
        )

    @respx.mock
    async def test_second_variant_tried(self) -> None:
        respx.get(INLINE_EMBED).respond(404)
        respx.get("https://inline.example/e/603").respond(200, html=PLAYER_HTML)

        async with httpx.AsyncClient() as client:
            provider = self._provider(client, alt_paths=["/e/{id}"])
            outcome = await provider.resolve(MOVIE, _deadline())

        assert isinstance(outcome, Found)

    @respx.mock
    async def test_reachable_page_without_stream_is_proxy(self) -> None:
        respx.get(INLINE_EMBED).respond(
            200, html=EMPTY_PLAYER_HTML
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == ProxyFallback(embed_url=INLINE_EMBED)

    @respx.mock
    async def test_gate_page_is_unreachable(self) -> None:
        respx.get(INLINE_EMBED).respond(
            200, html="<div class='cf-turnstile'></div>"
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert isinstance(outcome, NotFound)

    @respx.mock
    async def test_iframes_followed_two_levels_deep(self) -> None:
        respx.get(INLINE_EMBED).respond(
            200, html='<iframe src="https://f1.example/p"></iframe>'
        )
        respx.get("https://f1.example/p").respond(
            200, html='<iframe src="https://f2.example/p"></iframe>'
        )
        respx.get("https://f2.example/p").respond(
            200, html='<iframe src="https://f3.example/p"></iframe>'
        )
        deepest = respx.get("https://f3.example/p").respond(200, html=PLAYER_HTML)

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert isinstance(outcome, ProxyFallback)
        assert deepest.called is False

    @respx.mock
    async def test_nested_iframe_stream(self) -> None:
        respx.get(INLINE_EMBED).respond(
            200, html='<iframe src="https://f1.example/p"></iframe>'
        )
        respx.get("https://f1.example/p").respond(200, html=PLAYER_HTML)

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert isinstance(outcome, Found)

    @respx.mock
    async def test_media_iframe_returned_directly(self) -> None:
        respx.get(INLINE_EMBED).respond(
            200, html='<iframe src="https://cdn.example.com/v/603.mp4"></iframe>'
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == Found(
            url="https://cdn.example.com/v/603.mp4", kind="direct-file"
        )

    @respx.mock
    async def test_connection_error_is_not_found(self) -> None:
        respx.get(INLINE_EMBED).mock(
            side_effect=httpx.ConnectError("refused")
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert isinstance(outcome, NotFound)

    async def test_expired_deadline(self) -> None:
        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, Deadline(at=0.0))

        assert isinstance(outcome, NotFound)


# ---------------------------------------------------------------------------
# Gate bypass
# ---------------------------------------------------------------------------


class TestGateBypassProvider:
    def _provider(self, client: httpx.AsyncClient) -> GateBypassProvider:
        config = ProviderConfig(base_url="https://gate.example")
        return GateBypassProvider(http_client=client, config=config)

    @respx.mock
    async def test_gate_hands_embed_to_browser(self) -> None:
        respx.get("https://gate.example/embed/movie/603").respond(
            403, html="<title>Just a moment...</title>"
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == ProxyFallback(
            embed_url="https://gate.example/embed/movie/603"
        )

    @respx.mock
    async def test_iframe_headers_sent(self) -> None:
        route = respx.get("https://gate.example/embed/movie/603").respond(
            200, html=PLAYER_HTML
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert isinstance(outcome, Found)
        headers = route.calls[0].request.headers
        assert headers["Sec-Fetch-Dest"] == "iframe"
        assert headers["Referer"] == "https://gate.example/"

    @respx.mock
    async def test_server_error(self) -> None:
        respx.get("https://gate.example/embed/movie/603").respond(500, text="oops")

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert isinstance(outcome, NotFound)


# ---------------------------------------------------------------------------
# Feed API
# ---------------------------------------------------------------------------


class TestFeedApiProvider:
    def _provider(self, client: httpx.AsyncClient) -> FeedApiProvider:
        config = ProviderConfig(
            base_url="https://feed.example",
            api_url="https://api.feed.example/v1/{type}/{id}",
        )
        return FeedApiProvider(http_client=client, config=config)

    @respx.mock
    async def test_feed_used_when_embed_unreachable(self) -> None:
        respx.get("https://feed.example/embed/movie/603").respond(404)
        respx.get("https://api.feed.example/v1/movie/603").respond(
            200, json={"data": {"file": "https://cdn.example.com/feed/603.mp4"}}
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == Found(
            url="https://cdn.example.com/feed/603.mp4", kind="direct-file"
        )

    @respx.mock
    async def test_embed_page_wins_over_feed(self) -> None:
        respx.get("https://feed.example/embed/movie/603").respond(200, html=PLAYER_HTML)
        feed = respx.get("https://api.feed.example/v1/movie/603").respond(200, json={})

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert isinstance(outcome, Found)
        assert feed.called is False

    @respx.mock
    async def test_reachable_embed_falls_back_to_proxy(self) -> None:
        respx.get("https://feed.example/embed/movie/603").respond(
            200, html=EMPTY_PLAYER_HTML
        )
        respx.get("https://api.feed.example/v1/movie/603").respond(
            200, text="not json", headers={"content-type": "application/json"}
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == ProxyFallback(
            embed_url="https://feed.example/embed/movie/603"
        )

    @respx.mock
    async def test_nothing(self) -> None:
        respx.get("https://feed.example/embed/movie/603").respond(404)
        respx.get("https://api.feed.example/v1/movie/603").respond(404)

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert isinstance(outcome, NotFound)


# ---------------------------------------------------------------------------
# Multi server
# ---------------------------------------------------------------------------

MS_EMBED = "https://ms.example/embed/movie/603"
MS_EMBED_HTML = """
<div id="watch" data-id="603">
  <ul class="servers">
    <li data-server="alpha">Alpha</li>
    <li data-server="beta">Beta</li>
  </ul>
</div>
"""


class TestParseEmbedPage:
    def test_internal_id_and_servers(self) -> None:
        html = (
            '<div data-id="9911"><li data-server="b"></li>'
            '<li data-server="a"></li><li data-server="b"></li></div>'
        )
        assert parse_embed_page(html) == ("9911", ["b", "a"])

    def test_fallback_attributes(self) -> None:
        html = '<section data-content-id="77"><a data-server-id="s1"></a></section>'
        assert parse_embed_page(html) == ("77", ["s1"])

    def test_empty_page(self) -> None:
        assert parse_embed_page("<html></html>") == (None, [])


class TestMultiServerProvider:
    def _provider(
        self, client: httpx.AsyncClient, **cfg: object
    ) -> MultiServerProvider:
        params: dict[str, object] = {
            "base_url": "https://ms.example",
            "api_url": "https://ms.example/api/{id}/{server}",
            "secondary_api_path": "/api/source/{hash}",
        }
        params.update(cfg)
        config = ProviderConfig(**params)  # type: ignore[arg-type]
        return MultiServerProvider(http_client=client, config=config)

    @respx.mock
    async def test_gated_server_skipped_then_secondary_api(self) -> None:
        respx.get(MS_EMBED).respond(200, html=MS_EMBED_HTML)
        respx.get("https://ms.example/api/603/alpha").respond(
            200, json={"url": "https://alpha.example/e/xyz"}
        )
        respx.get("https://alpha.example/e/xyz").respond(
            200, html="<title>Just a moment...</title>"
        )
        respx.get("https://ms.example/api/603/beta").respond(
            200, json={"url": "https://beta.example/v/abcd1234"}
        )
        respx.get("https://beta.example/v/abcd1234").respond(
            200, html='<div id="player" data-hash="abcd1234"></div>'
        )
        source = respx.post("https://beta.example/api/source/abcd1234").respond(
            200, json={"data": [{"file": "https://cdn.example.com/b/603.mp4"}]}
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == Found(
            url="https://cdn.example.com/b/603.mp4", kind="direct-file"
        )
        request = source.calls[0].request
        assert request.headers["X-Requested-With"] == "XMLHttpRequest"
        assert b"hash=abcd1234" in request.content

    @respx.mock
    async def test_api_keyed_by_internal_id(self) -> None:
        respx.get(MS_EMBED).respond(
            200, html='<div data-id="9911"><li data-server="alpha"></li></div>'
        )
        api = respx.get("https://ms.example/api/9911/alpha").respond(
            200, json={"stream_url": "https://cdn.example.com/a/master.m3u8"}
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == Found(
            url="https://cdn.example.com/a/master.m3u8", kind="playlist"
        )
        assert api.call_count == 1

    @respx.mock
    async def test_configured_servers_override_page(self) -> None:
        respx.get(MS_EMBED).respond(200, html=MS_EMBED_HTML)
        alpha = respx.get("https://ms.example/api/603/alpha").respond(200, json={})
        gamma = respx.get("https://ms.example/api/603/gamma").respond(
            200, json={"file": "https://cdn.example.com/g/603.mp4"}
        )

        async with httpx.AsyncClient() as client:
            provider = self._provider(client, server_ids=["gamma"])
            outcome = await provider.resolve(MOVIE, _deadline())

        assert isinstance(outcome, Found)
        assert gamma.call_count == 1
        assert alpha.call_count == 0

    @respx.mock
    async def test_player_page_stream(self) -> None:
        respx.get(MS_EMBED).respond(200, html=MS_EMBED_HTML)
        respx.get("https://ms.example/api/603/alpha").respond(
            200, json={"link": "https://alpha.example/e/xyz"}
        )
        respx.get("https://alpha.example/e/xyz").respond(200, html=PLAYER_HTML)

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert isinstance(outcome, Found)

    @respx.mock
    async def test_no_server_produces(self) -> None:
        respx.get(MS_EMBED).respond(200, html=MS_EMBED_HTML)
        respx.get("https://ms.example/api/603/alpha").respond(200, json={})
        respx.get("https://ms.example/api/603/beta").respond(502)

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == NotFound("no server produced a stream")

    @respx.mock
    async def test_page_without_servers(self) -> None:
        respx.get(MS_EMBED).respond(200, html='<div data-id="603"></div>')

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == NotFound("no servers listed on embed page")

    @respx.mock
    async def test_embed_page_missing(self) -> None:
        respx.get(MS_EMBED).respond(404)

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == NotFound("embed page unavailable")

    async def test_not_configured(self) -> None:
        async with httpx.AsyncClient() as client:
            provider = self._provider(client, api_url=None)
            outcome = await provider.resolve(MOVIE, _deadline())

        assert isinstance(outcome, NotFound)


# ---------------------------------------------------------------------------
# Secondary
# ---------------------------------------------------------------------------


class TestSecondaryEmbedProvider:
    def _provider(self, client: httpx.AsyncClient) -> SecondaryEmbedProvider:
        config = ProviderConfig(base_url="https://second.example")
        return SecondaryEmbedProvider(http_client=client, config=config)

    @respx.mock
    async def test_episode_embed(self) -> None:
        respx.get("https://second.example/embed/tv/1399/1/2").respond(
            200, html=PLAYER_HTML
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(EPISODE, _deadline())

        assert isinstance(outcome, Found)

    @respx.mock
    async def test_reachable_without_stream(self) -> None:
        respx.get("https://second.example/embed/movie/603").respond(
            200, html=EMPTY_PLAYER_HTML
        )

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert outcome == ProxyFallback(
            embed_url="https://second.example/embed/movie/603"
        )

    @respx.mock
    async def test_unreachable(self) -> None:
        respx.get("https://second.example/embed/movie/603").respond(404)

        async with httpx.AsyncClient() as client:
            outcome = await self._provider(client).resolve(MOVIE, _deadline())

        assert isinstance(outcome, NotFound)

    async def test_embed_url(self) -> None:
        async with httpx.AsyncClient() as client:
            provider = self._provider(client)
            assert provider.embed_url(MOVIE) == "https://second.example/embed/movie/603"
            series = ResolutionKey(content_id="1399", media_type="series")
            assert provider.embed_url(series) is None
