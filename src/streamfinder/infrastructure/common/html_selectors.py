"""CSS-selector-based HTML helpers with fallback chains.

Every extraction function accepts a primary selector and optional
*fallback_selectors*; the first selector that yields at least one match
wins, which keeps providers working across minor layout changes.
"""

from __future__ import annotations

from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag


def parse_html(html: str) -> BeautifulSoup:
    """Parse an HTML string into a BeautifulSoup tree (lxml parser)."""
    return BeautifulSoup(html, "lxml")


def select_items(
    root: BeautifulSoup | Tag,
    selector: str,
    *fallback_selectors: str,
) -> list[Tag]:
    """Select elements via CSS; results come from the first matching selector."""
    for sel in (selector, *fallback_selectors):
        items = root.select(sel)
        if items:
            return items
    return []


def extract_all_attrs(
    root: BeautifulSoup | Tag,
    selector: str,
    attrs: tuple[str, ...],
    *,
    base_url: str = "",
) -> list[str]:
    """First non-empty attribute out of *attrs* for every match, in document order.

    Protocol-relative and relative values are resolved against *base_url*.
    """
    values: list[str] = []
    for tag in root.select(selector):
        for attr in attrs:
            val = tag.get(attr)
            if not val:
                continue
            href = str(val).strip()
            if href.startswith("//"):
                href = "https:" + href
            elif base_url:
                href = urljoin(base_url, href)
            values.append(href)
            break
    return values


def iframe_urls(html: str, base_url: str = "") -> list[str]:
    """Absolute ``src``/``data-src`` of every iframe, duplicates removed."""
    soup = parse_html(html)
    urls = extract_all_attrs(soup, "iframe", ("src", "data-src"), base_url=base_url)
    seen: set[str] = set()
    result: list[str] = []
    for url in urls:
        if url.startswith(("http://", "https://")) and url not in seen:
            seen.add(url)
            result.append(url)
    return result
