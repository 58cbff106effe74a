from .proxy_page import ProxiedPage, ProxyPageFetcher, is_allowed_target, rewrite_html

__all__ = ["ProxiedPage", "ProxyPageFetcher", "is_allowed_target", "rewrite_html"]
