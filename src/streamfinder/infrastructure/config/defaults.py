"""Hardcoded default configuration values.

Provider endpoints are intentionally absent: a provider without a
``base_url`` is not wired into the chain.
"""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "streamfinder",
    "environment": "dev",
    "http": {
        "timeout_seconds": 15.0,
        "follow_redirects": True,
        "retry_max_attempts": 1,
        "rate_limit_rps": 10.0,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "cache": {
        "dir": "./.cache/streamfinder",
        "backend": "diskcache",
    },
    "resolution": {
        "cache_ttl_seconds": 7 * 86_400,
        "log_max_entries": None,
        "synthesize_proxy": True,
        "proxy_path": "/proxy/player",
    },
    "discovery": {
        "batch_size": 5,
        "max_pages": 40,
    },
    "interception": {
        "allowed_domains": [],
        "collection_window_seconds": 0.5,
        "timeout_seconds": 20.0,
    },
}
