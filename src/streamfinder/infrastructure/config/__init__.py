from __future__ import annotations

from .load import load_config
from .schema import AppConfig, EnvOverrides, ProviderConfig

__all__ = ["AppConfig", "EnvOverrides", "ProviderConfig", "load_config"]
