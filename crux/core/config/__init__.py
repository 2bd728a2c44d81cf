"""Configuration management module."""

from crux.core.config.settings import (
    CacheSettings,
    ConfigManager,
    CruxConfig,
    LoggingSettings,
    RateLimitSettings,
    ServerSettings,
    load_config_from_env,
)

__all__ = [
    "ConfigManager",
    "CruxConfig",
    "CacheSettings",
    "RateLimitSettings",
    "ServerSettings",
    "LoggingSettings",
    "load_config_from_env",
]
