"""Same-origin proxy for provider embed pages.

The fetched page is cleaned of ad/tracker markup and receives an injected
script that reports every media request to the parent window as a
``VIDEO_SOURCE`` message. Only HTML is rewritten; other content types
are passed through untouched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx
import structlog
from bs4 import BeautifulSoup, Comment

from streamfinder.domain.entities.interception import VIDEO_SOURCE_MESSAGE
from streamfinder.domain.exceptions import ProxyTargetNotAllowedError

log = structlog.get_logger(__name__)

FRAME_HEADERS = {
    "X-Frame-Options": "ALLOWALL",
    "Content-Security-Policy": "frame-ancestors *",
}

_AD_MARKERS = re.compile(
    r"ads|advert|popunder|popup|banner|track|analytics"
    r"|doubleclick|adnxs|taboola|outbrain",
    re.IGNORECASE,
)
_POPUP_HANDLER = re.compile(r"window\.open|popup", re.IGNORECASE)
_HIDDEN_STYLE = re.compile(
    r"visibility:\s*hidden|display:\s*none|(?:width|height):\s*[01](?:px)?\s*(?:;|$)",
    re.IGNORECASE,
)

ANTI_AD_CSS = """
[class*="ad-"], [class*="ads-"], [class*="popup"],
[id*="ad-"], [id*="ads-"], [id*="popup"],
a[target="_blank"], div[onclick*="window.open"],
iframe[src*="ads"], iframe[src*="pop"], iframe[src*="banner"] {
  display: none !important;
  pointer-events: none !important;
}
video, .jw-video, .plyr, #player, .video-js {
  pointer-events: auto !important;
  z-index: 10 !important;
}
"""

INTERCEPT_SCRIPT = """
(function () {
  var TYPE = "%(message_type)s";
  var MEDIA = /\\.m3u8|\\.mp4|\\/master|\\/playlist|index-/i;
  function report(url, tag) {
    try {
      if (typeof url !== "string" || !MEDIA.test(url)) return;
      var abs = new URL(url, document.baseURI).href;
      window.parent.postMessage({type: TYPE, url: abs, sourceTag: tag}, "*");
    } catch (e) {}
  }
  var origOpen = XMLHttpRequest.prototype.open;
  XMLHttpRequest.prototype.open = function (method, url) {
    report(String(url), "xhr");
    return origOpen.apply(this, arguments);
  };
  if (window.fetch) {
    var origFetch = window.fetch;
    window.fetch = function (input) {
      report(typeof input === "string" ? input : input && input.url, "fetch");
      return origFetch.apply(this, arguments);
    };
  }
  var desc = Object.getOwnPropertyDescriptor(HTMLMediaElement.prototype, "src");
  if (desc && desc.set) {
    Object.defineProperty(HTMLMediaElement.prototype, "src", {
      get: desc.get,
      set: function (value) {
        report(String(value), "media");
        return desc.set.call(this, value);
      },
      configurable: true
    });
  }
  window.open = function () { return null; };
})();
""" % {"message_type": VIDEO_SOURCE_MESSAGE}


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def is_allowed_target(url: str, allowed_domains: list[str]) -> bool:
    """http(s) URL whose host is, or is a subdomain of, an allowed domain."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    host = parsed.hostname.lower()
    return any(
        host == domain.lower() or host.endswith("." + domain.lower())
        for domain in allowed_domains
    )


def _is_hidden_iframe(style: str, width: str, height: str) -> bool:
    if _HIDDEN_STYLE.search(style):
        return True
    return width.strip() in ("0", "1") or height.strip() in ("0", "1")


def rewrite_html(html: str, target_url: str) -> str:
    """Strip ads, absolutize root-relative URLs and inject the intercept script."""
    origin = origin_of(target_url)
    soup = BeautifulSoup(html, "lxml")

    for tag in soup.find_all(["script", "link"]):
        ref = tag.get("src") or tag.get("href") or ""
        if _AD_MARKERS.search(str(ref)):
            tag.decompose()

    for tag in soup.find_all(onclick=True):
        if _POPUP_HANDLER.search(str(tag["onclick"])):
            del tag["onclick"]

    for iframe in soup.find_all("iframe"):
        if _is_hidden_iframe(
            str(iframe.get("style", "")),
            str(iframe.get("width", "")),
            str(iframe.get("height", "")),
        ):
            iframe.decompose()

    for attr in ("src", "href"):
        for tag in soup.find_all(attrs={attr: True}):
            value = str(tag[attr])
            if value.startswith("/") and not value.startswith("//"):
                tag[attr] = f"{origin}{value}"

    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    if soup.html is None:
        soup.append(soup.new_tag("html"))
    head = soup.head
    if head is None:
        head = soup.new_tag("head")
        soup.html.insert(0, head)

    injected = [
        soup.new_tag("base", href=f"{origin}/"),
        soup.new_tag("meta", attrs={"name": "referrer", "content": "no-referrer"}),
    ]
    style = soup.new_tag("style")
    style.string = ANTI_AD_CSS
    script = soup.new_tag("script")
    script.string = INTERCEPT_SCRIPT
    injected.extend([style, script])
    for position, tag in enumerate(injected):
        head.insert(position, tag)

    return str(soup)


@dataclass(frozen=True)
class ProxiedPage:
    status_code: int
    body: bytes
    media_type: str
    headers: dict[str, str] = field(default_factory=dict)


class ProxyPageFetcher:
    """Fetches an allow-listed page and prepares it for framing."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        allowed_domains: list[str],
        user_agent: str,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._http = http_client
        self._allowed = list(allowed_domains)
        self._user_agent = user_agent
        self._timeout = timeout_seconds

    def check_target(self, url: str) -> None:
        if not is_allowed_target(url, self._allowed):
            raise ProxyTargetNotAllowedError(url)

    async def fetch(self, url: str) -> ProxiedPage:
        """Raises ProxyTargetNotAllowedError and httpx.HTTPError."""
        self.check_target(url)
        origin = origin_of(url)
        log.info("proxy_fetch", url=url)
        resp = await self._http.get(
            url,
            headers={
                "User-Agent": self._user_agent,
                "Referer": f"{origin}/",
                "Accept": (
                    "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
                ),
                "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
            },
            follow_redirects=True,
            timeout=self._timeout,
        )
        final_url = str(resp.url)
        if final_url != url and not is_allowed_target(final_url, self._allowed):
            log.warning("proxy_redirect_rejected", url=url, target=final_url)
            raise ProxyTargetNotAllowedError(final_url)

        if not resp.is_success:
            log.warning("proxy_upstream_error", url=url, status=resp.status_code)
            return ProxiedPage(
                status_code=resp.status_code,
                body=f"Upstream error: {resp.status_code}".encode(),
                media_type="text/plain",
            )

        content_type = resp.headers.get("content-type", "")
        if "text/html" not in content_type.lower():
            return ProxiedPage(
                status_code=200,
                body=resp.content,
                media_type=content_type or "application/octet-stream",
                headers={"X-Frame-Options": FRAME_HEADERS["X-Frame-Options"]},
            )

        html = rewrite_html(resp.text, final_url)
        return ProxiedPage(
            status_code=200,
            body=html.encode("utf-8"),
            media_type="text/html; charset=utf-8",
            headers=dict(FRAME_HEADERS),
        )
