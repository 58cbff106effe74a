"""Zero-impact in-memory resolution metrics.

All counters are plain integers mutated from the single-threaded event
loop: no locks, no I/O. ``time.perf_counter_ns()`` is used for timing.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Literal

ProviderOutcome = Literal["found", "proxy", "not_found", "timeout", "error"]


@dataclass
class ProviderStats:
    """Accumulated statistics for a single provider."""

    attempts: int = 0
    found: int = 0
    proxy: int = 0
    not_found: int = 0
    timeouts: int = 0
    errors: int = 0
    total_duration_ns: int = 0

    def snapshot(self) -> dict[str, object]:
        avg_ms = (
            round(self.total_duration_ns / self.attempts / 1_000_000, 1)
            if self.attempts
            else 0.0
        )
        return {
            "attempts": self.attempts,
            "found": self.found,
            "proxy": self.proxy,
            "not_found": self.not_found,
            "timeouts": self.timeouts,
            "errors": self.errors,
            "avg_duration_ms": avg_ms,
        }


@dataclass
class ResolutionStats:
    requests: int = 0
    cache_hits: int = 0
    resolved: int = 0
    proxied: int = 0
    unresolved: int = 0

    def snapshot(self) -> dict[str, object]:
        return {
            "requests": self.requests,
            "cache_hits": self.cache_hits,
            "resolved": self.resolved,
            "proxied": self.proxied,
            "unresolved": self.unresolved,
        }


@dataclass
class MetricsCollector:
    """Central in-memory metrics collector."""

    _providers: dict[str, ProviderStats] = field(default_factory=dict)
    _resolution: ResolutionStats = field(default_factory=ResolutionStats)
    _start_ns: int = field(default_factory=time.perf_counter_ns)

    def record_provider(
        self, provider_id: str, outcome: ProviderOutcome, duration_ns: int
    ) -> None:
        stats = self._providers.setdefault(provider_id, ProviderStats())
        stats.attempts += 1
        stats.total_duration_ns += duration_ns
        if outcome == "found":
            stats.found += 1
        elif outcome == "proxy":
            stats.proxy += 1
        elif outcome == "timeout":
            stats.timeouts += 1
        elif outcome == "error":
            stats.errors += 1
        else:
            stats.not_found += 1

    def record_request(self, *, cache_hit: bool) -> None:
        self._resolution.requests += 1
        if cache_hit:
            self._resolution.cache_hits += 1

    def record_result(self, *, resolved: bool, proxied: bool) -> None:
        if proxied:
            self._resolution.proxied += 1
        elif resolved:
            self._resolution.resolved += 1
        else:
            self._resolution.unresolved += 1

    def snapshot(self) -> dict[str, object]:
        uptime_s = round((time.perf_counter_ns() - self._start_ns) / 1_000_000_000, 1)
        return {
            "uptime_seconds": uptime_s,
            "resolution": self._resolution.snapshot(),
            "providers": {
                name: stats.snapshot()
                for name, stats in sorted(self._providers.items())
            },
        }
