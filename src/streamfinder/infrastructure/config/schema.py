"""Validated settings for the resolver service, its providers and storage."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]


def _normalize_path(value: Any) -> Path:
    """Expand ``~`` only; the cache directory is created when the store opens."""
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


class CacheConfig(BaseSettings):
    """Storage backend for cache rows, attempt log and failure records."""

    backend: Literal["diskcache", "redis"] = Field(
        default="diskcache",
        description="Cache backend: 'diskcache' (SQLite) or 'redis'",
    )
    directory: Path = Field(
        default=Path("./.cache/streamfinder"),
        alias="dir",
        description="Diskcache SQLite DB path",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (only when backend=redis)",
    )
    max_concurrent: int = Field(
        default=10,
        description="Max parallel cache ops (semaphore limit)",
    )
    namespace: str = Field(
        default="streamfinder",
        description="Key prefix, lets deployments share one directory or Redis DB",
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("directory", mode="before")
    @classmethod
    def _validate_dir(cls, v: Any) -> Path:
        return _normalize_path(v)


class ResolutionConfig(BaseModel):
    """Orchestrator and persistence tuning."""

    cache_ttl_seconds: int = Field(
        default=7 * 86_400,
        description="Lifetime of a cached resolution (seconds). Default 7 days.",
    )
    log_max_entries: int | None = Field(
        default=None,
        description="Attempt log rows kept before the oldest are dropped. "
        "None keeps every row until an explicit purge.",
    )
    synthesize_proxy: bool = Field(
        default=True,
        description="Build a last-resort proxied embed when every provider fails.",
    )
    proxy_path: str = Field(
        default="/proxy/player",
        description="Same-origin path that frames provider embed pages.",
    )
    refresh_concurrency: int = Field(default=8)
    refresh_skip_providers: list[str] = Field(default_factory=lambda: ["secondary"])
    retry_after_hours: float = Field(default=6.0)
    retry_limit: int = Field(default=50)
    retry_concurrency: int = Field(default=5)

    @field_validator("cache_ttl_seconds")
    @classmethod
    def _validate_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("cache_ttl_seconds must be > 0")
        return v


class ProviderConfig(BaseModel):
    """Per-provider wiring: endpoints, credentials, rank and deadline.

    Path templates are ``str.format`` patterns over ``id``, ``imdb``,
    ``season``, ``episode``, ``audio``, ``type`` and (catalog only) ``slug``.
    """

    enabled: bool = True
    priority: int = 100
    timeout_seconds: float = 8.0
    base_url: str | None = None
    base_urls: list[str] = Field(default_factory=list)
    movie_path: str = "/embed/movie/{id}"
    episode_path: str = "/embed/tv/{id}/{season}/{episode}"
    alt_paths: list[str] = Field(default_factory=list)
    api_url: str | None = None
    secondary_api_path: str | None = None
    listing_url: str | None = None
    server_ids: list[str] = Field(default_factory=list)
    username: str | None = None
    password: str | None = None

    @field_validator("timeout_seconds")
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_seconds must be > 0")
        return v

    @property
    def all_base_urls(self) -> list[str]:
        bases = [self.base_url] if self.base_url else []
        bases.extend(b for b in self.base_urls if b not in bases)
        return [b.rstrip("/") for b in bases]


def _default_providers() -> dict[str, ProviderConfig]:
    return {
        "catalog": ProviderConfig(
            priority=1,
            timeout_seconds=8.0,
            movie_path="/filme/{slug}",
            episode_path="/series/{slug}",
        ),
        "inline": ProviderConfig(priority=2, timeout_seconds=8.0),
        "multiserver": ProviderConfig(priority=3, timeout_seconds=15.0),
        "gatebypass": ProviderConfig(priority=4, timeout_seconds=7.0),
        "feedapi": ProviderConfig(priority=5, timeout_seconds=6.0),
        "secondary": ProviderConfig(priority=6, timeout_seconds=6.0),
    }


class DiscoveryConfig(BaseModel):
    """Paginated slug discovery against the catalog listing API."""

    batch_size: int = Field(default=5, description="Pages fetched concurrently.")
    max_pages: int = Field(default=40, description="Hard page ceiling.")

    @field_validator("batch_size", "max_pages")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be > 0")
        return v


class InterceptionConfig(BaseModel):
    """Proxy page allow-list and client-side interception timers."""

    allowed_domains: list[str] = Field(default_factory=list)
    collection_window_seconds: float = 0.5
    timeout_seconds: float = 20.0


class AdminConfig(BaseModel):
    password: str | None = Field(
        default=None,
        description="Shared secret for /admin routes. None disables them.",
    )


class AppConfig(BaseModel):
    """Final, validated configuration handed to the composition root.

    HTTP and logging settings are flat attributes read from the ``http`` and
    ``logging`` YAML sections through alias paths; everything else keeps its
    section as a nested model. Layering happens in ``load.py``.
    """

    app_name: str = Field(default="streamfinder", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # HTTP client (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=15.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
    )
    http_follow_redirects: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "http_follow_redirects",
            AliasPath("http", "follow_redirects"),
        ),
    )
    http_user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
        ),
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
    )
    http_retry_max_attempts: int = Field(
        default=1,
        validation_alias=AliasChoices(
            "http_retry_max_attempts",
            AliasPath("http", "retry_max_attempts"),
        ),
    )
    http_retry_backoff_base: float = Field(
        default=0.5,
        validation_alias=AliasChoices(
            "http_retry_backoff_base",
            AliasPath("http", "retry_backoff_base"),
        ),
    )
    http_retry_max_backoff: float = Field(
        default=3.0,
        validation_alias=AliasChoices(
            "http_retry_max_backoff",
            AliasPath("http", "retry_max_backoff"),
        ),
    )
    rate_limit_requests_per_second: float = Field(
        default=10.0,
        validation_alias=AliasChoices(
            "rate_limit_requests_per_second",
            AliasPath("http", "rate_limit_rps"),
        ),
        description="Per-domain request rate. 0 = unlimited.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    cache: CacheConfig = Field(default_factory=CacheConfig)
    resolution: ResolutionConfig = Field(default_factory=ResolutionConfig)
    providers: dict[str, ProviderConfig] = Field(default_factory=_default_providers)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    interception: InterceptionConfig = Field(default_factory=InterceptionConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)

    @field_validator("http_timeout_seconds")
    @classmethod
    def _validate_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return v

    @field_validator("providers", mode="before")
    @classmethod
    def _merge_provider_defaults(cls, v: Any) -> Any:
        # Partial YAML blocks only override the fields they name.
        if not isinstance(v, dict):
            return v
        merged: dict[str, Any] = {
            name: cfg.model_dump() for name, cfg in _default_providers().items()
        }
        for name, override in v.items():
            if isinstance(override, ProviderConfig):
                override = override.model_dump(exclude_unset=True)
            if isinstance(override, dict):
                merged.setdefault(name, {}).update(override)
            else:
                merged[name] = override
        return merged

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def to_sectioned_dict(self) -> dict[str, Any]:
        """Sectioned YAML shape with provider passwords left out."""
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "follow_redirects": self.http_follow_redirects,
                "user_agent": self.http_user_agent,
                "retry_max_attempts": self.http_retry_max_attempts,
                "retry_backoff_base": self.http_retry_backoff_base,
                "retry_max_backoff": self.http_retry_max_backoff,
                "rate_limit_rps": self.rate_limit_requests_per_second,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
            "cache": {
                "backend": self.cache.backend,
                "dir": str(self.cache.directory),
                "redis_url": self.cache.redis_url,
                "max_concurrent": self.cache.max_concurrent,
                "namespace": self.cache.namespace,
            },
            "resolution": self.resolution.model_dump(),
            "providers": {
                name: cfg.model_dump(exclude={"password"})
                for name, cfg in self.providers.items()
            },
            "discovery": self.discovery.model_dump(),
            "interception": self.interception.model_dump(),
        }


class EnvOverrides(BaseSettings):
    """Flat ``STREAMFINDER_*`` variables, e.g. ``STREAMFINDER_ADMIN_PASSWORD``.

    Only variables that are set end up in the merge; per-provider variables
    (``STREAMFINDER_PROVIDERS__<ID>__<FIELD>``) are parsed in ``load.py``.
    """

    model_config = SettingsConfigDict(
        env_prefix="STREAMFINDER_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_follow_redirects: Optional[bool] = None
    http_user_agent: Optional[str] = None
    rate_limit_requests_per_second: Optional[float] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    cache_backend: Optional[Literal["diskcache", "redis"]] = None
    cache_dir: Optional[Path] = None
    cache_redis_url: Optional[str] = None
    cache_namespace: Optional[str] = None

    resolution_cache_ttl_seconds: Optional[int] = None

    admin_password: Optional[str] = None

    @field_validator("cache_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Any:
        if v is None:
            return None
        return _normalize_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        """Variables that were set, keyed by their flat name."""
        return self.model_dump(exclude_none=True)
