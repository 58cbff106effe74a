"""Stream URL extraction from player pages and API payloads.

Strategies, in priority order:
1. inline ``sources = [...]`` array (JWPlayer / Clappr / video.js configs)
2. ``file:`` / ``source:`` literal pointing at a media file
3. generic scan for quoted playlist or MP4 URLs

Dean Edwards packed blocks are unpacked first and searched alongside the
page, since many embed hosts hide their player config that way.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from streamfinder.domain.entities.resolution import Found, StreamKind

_NOISE_HOSTS: tuple[str, ...] = (
    "google-analytics.",
    "googletagmanager.",
    "doubleclick.",
    "googlesyndication.",
    "facebook.",
    "histats.",
    "yandex.",
    "cloudflareinsights.",
    "popads.",
    "adsterra.",
)

_NOISE_MARKERS: tuple[str, ...] = (
    "thumbnail",
    "/thumbs/",
    "sprite",
    "poster",
    "preview",
    ".vtt",
    ".srt",
    "/track",
    "/subtitles/",
)

_MEDIA_MARKERS: tuple[str, ...] = (".m3u8", ".mp4", "/master", "/playlist", "index-")

_SOURCES_ARRAY_RE = re.compile(r"""\bsources["']?\s*[:=]\s*(\[.*?\])""", re.DOTALL)
_KEYED_URL_RE = re.compile(
    r"""["']?(?:file|src)["']?\s*:\s*["'](https?:[^"']+)["']"""
)
_BARE_URL_RE = re.compile(r"""["'](https?:[^"'\s]+)["']""")
_FILE_LITERAL_RE = re.compile(
    r"""\b(?:file|source)\s*:\s*["']"""
    r"""(https?:[^"']+?\.(?:m3u8|mp4|mpd)(?:[?#][^"']*)?)["']"""
)
_GENERIC_RE = re.compile(r"""["'](https?:(?:\\?/){2}[^"'\s<>]+)["']""")
_PACKED_RE = re.compile(
    r"eval\s*\(\s*function\s*\(\s*p\s*,\s*a\s*,\s*c\s*,\s*k\s*,\s*e\s*,\s*d\s*\)"
)
_PACKED_ARGS_RE = re.compile(
    r"}\('(.*?)',\s*(\d+),\s*(\d+),\s*'([^']*)'\s*\.split\('\|'\)", re.DOTALL
)


def unescape_url(url: str) -> str:
    return url.replace("\\/", "/").replace("\\u0026", "&").replace("&amp;", "&")


def classify(url: str) -> StreamKind:
    """``direct-file`` for MP4 URLs, ``playlist`` for everything else."""
    return "direct-file" if ".mp4" in url.lower() else "playlist"


def _is_noise(url: str) -> bool:
    lowered = url.lower()
    host = (urlparse(lowered).hostname or "") + "."
    if any(marker in host for marker in _NOISE_HOSTS):
        return True
    return any(marker in lowered for marker in _NOISE_MARKERS)


def is_media_url(url: str) -> bool:
    """True for http(s) URLs that look like a playable stream."""
    if not url.lower().startswith(("http://", "https://")):
        return False
    lowered = url.lower()
    return any(m in lowered for m in _MEDIA_MARKERS) and not _is_noise(url)


def unpack_packed(packed: str) -> str | None:
    """Unpack Dean Edwards ``eval(function(p,a,c,k,e,d){...})`` JavaScript."""
    match = _PACKED_ARGS_RE.search(packed)
    if not match:
        return None

    payload = match.group(1)
    base = int(match.group(2))
    count = int(match.group(3))
    words = match.group(4).split("|")
    if len(words) < count:
        words.extend([""] * (count - len(words)))

    def _replace(m: re.Match[str]) -> str:
        token = m.group(0)
        try:
            index = int(token, base)
        except ValueError:
            return token
        if index < len(words) and words[index]:
            return words[index]
        return token

    return re.sub(r"\b\w+\b", _replace, payload)


def _expand_packed(text: str) -> str:
    chunks = [text]
    for m in _PACKED_RE.finditer(text):
        unpacked = unpack_packed(text[m.start() : m.start() + 65536])
        if unpacked:
            chunks.append(unpacked.replace("\\'", "'").replace('\\"', '"'))
    return "\n".join(chunks)


def _from_sources_array(text: str) -> list[str]:
    urls: list[str] = []
    for block in _SOURCES_ARRAY_RE.finditer(text):
        body = block.group(1)
        keyed = [unescape_url(u) for u in _KEYED_URL_RE.findall(body)]
        if keyed:
            urls.extend(keyed)
            continue
        # Plain string arrays: sources: ["https://.../master.m3u8"]
        bare = (unescape_url(u) for u in _BARE_URL_RE.findall(body))
        urls.extend(u for u in bare if is_media_url(u))
    return urls


def _from_file_literal(text: str) -> list[str]:
    return [unescape_url(u) for u in _FILE_LITERAL_RE.findall(text)]


def _from_generic_scan(text: str) -> list[str]:
    urls: list[str] = []
    for raw in _GENERIC_RE.findall(text):
        url = unescape_url(raw)
        lowered = url.lower()
        if any(m in lowered for m in (".m3u8", ".mp4", "master", "playlist")):
            urls.append(url)
    return urls


def extract_all_stream_urls(text: str) -> list[Found]:
    """All candidate stream URLs in priority order, without duplicates."""
    if not text:
        return []
    expanded = _expand_packed(text)

    seen: set[str] = set()
    results: list[Found] = []
    for strategy in (_from_sources_array, _from_file_literal, _from_generic_scan):
        for url in strategy(expanded):
            if url in seen or _is_noise(url):
                continue
            seen.add(url)
            results.append(Found(url=url, kind=classify(url)))
    return results


def extract_stream_url(text: str) -> Found | None:
    """Best stream URL in *text*, or None."""
    found = extract_all_stream_urls(text)
    return found[0] if found else None


_JSON_URL_KEYS: tuple[str, ...] = (
    "stream_url",
    "streamUrl",
    "file",
    "url",
    "video_url",
    "link",
    "src",
    "embed_url",
)


def pick_stream_url(payload: object) -> str | None:
    """First http(s) URL under a known key in a JSON object (depth-first).

    Lists are searched element by element; nested ``sources``/``data``
    wrappers are unwrapped.
    """
    if isinstance(payload, list):
        for item in payload:
            url = pick_stream_url(item)
            if url:
                return url
        return None
    if not isinstance(payload, dict):
        return None
    for key in _JSON_URL_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value.startswith(("http://", "https://", "//")):
            return unescape_url("https:" + value if value.startswith("//") else value)
    for wrapper in ("sources", "data", "result", "video", "player"):
        if wrapper in payload:
            url = pick_stream_url(payload[wrapper])
            if url:
                return url
    return None
