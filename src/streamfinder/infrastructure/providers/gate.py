"""Login / captcha / bot-challenge page detection.

Providers behind such a gate cannot be scraped server-side; the chain
either moves on or hands the embed page to the browser via the proxy.
"""

from __future__ import annotations

from urllib.parse import urlparse

_GATE_MARKERS: tuple[str, ...] = (
    "cf-turnstile",
    "challenge-platform",
    "Just a moment",
    "cf-error-details",
    "Attention Required",
    "g-recaptcha",
    "h-captcha",
    "Please login",
    "Faça login",
    "Acesso negado",
    "Access denied",
)

_GATE_PATHS: tuple[str, ...] = ("/login", "/signin", "/auth")


def is_gate_page(status_code: int, html: str, final_url: str = "") -> bool:
    """True when the response is a gate rather than the requested page.

    - 401/403 are always gates.
    - A redirect that landed on a login-like path is a gate.
    - Otherwise any known marker in the body marks a gate.
    """
    if status_code in (401, 403):
        return True
    path = urlparse(final_url).path.lower() if final_url else ""
    if any(path.startswith(p) for p in _GATE_PATHS):
        return True
    return any(marker in html for marker in _GATE_MARKERS)
