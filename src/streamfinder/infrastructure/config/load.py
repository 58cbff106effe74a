from __future__ import annotations

import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .defaults import DEFAULT_CONFIG
from .schema import AppConfig, EnvOverrides

_SECTION_KEYS: set[str] = {
    "http",
    "logging",
    "cache",
    "resolution",
    "providers",
    "discovery",
    "interception",
    "admin",
}

# Flat keys (ENV/CLI) -> sectioned location.
_FLAT_MAP: dict[str, tuple[str, str]] = {
    "http_timeout_seconds": ("http", "timeout_seconds"),
    "http_follow_redirects": ("http", "follow_redirects"),
    "http_user_agent": ("http", "user_agent"),
    "rate_limit_requests_per_second": ("http", "rate_limit_rps"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
    "cache_backend": ("cache", "backend"),
    "cache_dir": ("cache", "dir"),
    "cache_redis_url": ("cache", "redis_url"),
    "cache_namespace": ("cache", "namespace"),
    "resolution_cache_ttl_seconds": ("resolution", "cache_ttl_seconds"),
    "admin_password": ("admin", "password"),
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge *override* into *base* in place; nested mappings merge key by key."""
    for key, value in override.items():
        if isinstance(base.get(key), dict) and isinstance(value, Mapping):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _normalize_layer(data: Mapping[str, Any]) -> dict[str, Any]:
    """Bring one layer into sectioned shape, mapping flat ENV/CLI keys via _FLAT_MAP."""
    out: dict[str, Any] = {}

    for section in _SECTION_KEYS:
        if section in data and isinstance(data[section], Mapping):
            out[section] = deepcopy(dict(data[section]))

    if "app_name" in data:
        out["app_name"] = data["app_name"]
    if "environment" in data:
        out["environment"] = data["environment"]

    for flat_key, (section, section_key) in _FLAT_MAP.items():
        if flat_key in data:
            out.setdefault(section, {})
            out[section][section_key] = data[flat_key]

    return out


_PROVIDER_ENV_PREFIX = "STREAMFINDER_PROVIDERS__"

# Provider fields settable from the environment; lists are comma separated.
_PROVIDER_ENV_FIELDS: frozenset[str] = frozenset(
    {
        "enabled",
        "priority",
        "timeout_seconds",
        "base_url",
        "base_urls",
        "api_url",
        "listing_url",
        "server_ids",
        "username",
        "password",
    }
)
_PROVIDER_LIST_FIELDS: frozenset[str] = frozenset({"base_urls", "server_ids"})


def _provider_env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    """
    Collect ``STREAMFINDER_PROVIDERS__<ID>__<FIELD>`` variables, e.g.
    ``STREAMFINDER_PROVIDERS__INLINE__BASE_URL=https://mirror.example``.

    Unknown fields raise ValueError so typos do not pass silently.
    """
    providers: dict[str, dict[str, Any]] = {}
    for name, value in environ.items():
        if not name.upper().startswith(_PROVIDER_ENV_PREFIX):
            continue
        provider_id, sep, field = name[len(_PROVIDER_ENV_PREFIX) :].partition("__")
        field = field.lower()
        if not sep or not provider_id:
            raise ValueError(f"Malformed provider variable: {name}")
        if field not in _PROVIDER_ENV_FIELDS:
            raise ValueError(f"Unknown provider field in {name}: {field!r}")
        parsed: Any = value
        if field in _PROVIDER_LIST_FIELDS:
            parsed = [v.strip() for v in value.split(",") if v.strip()]
        providers.setdefault(provider_id.lower(), {})[field] = parsed
    return {"providers": providers} if providers else {}


def _read_yaml_config(config_path: Path) -> dict[str, Any]:
    raw = config_path.read_text(encoding="utf-8")
    parsed = yaml.safe_load(raw)
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"Config YAML must be a mapping, got: {type(parsed)!r}")
    return parsed


def load_config(
    *,
    config_path: Path | None = None,
    dotenv_path: Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """Build AppConfig from defaults < YAML < env (flat, then per-provider) < CLI.

    Reads files only; nothing is created on disk.
    """
    cli_overrides = cli_overrides or {}

    # Load .env first so it participates as "env vars" layer.
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise FileNotFoundError(dotenv_path)
        load_dotenv(dotenv_path, override=False)

    base = _normalize_layer(deepcopy(DEFAULT_CONFIG))

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(config_path)
        _deep_merge(base, _normalize_layer(_read_yaml_config(config_path)))

    _deep_merge(base, _normalize_layer(EnvOverrides().to_update_dict()))
    _deep_merge(base, _provider_env_layer(os.environ))
    _deep_merge(base, _normalize_layer(cli_overrides))

    return AppConfig.model_validate(base)
