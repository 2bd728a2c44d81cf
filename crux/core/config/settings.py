"""Configuration management for the crux caching and rate limiting core."""

from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from crux.core.exceptions import ConfigurationError


@dataclass
class CacheSettings:
    """Tiered cache settings."""

    db_path: str = ":memory:"
    off_hours_multiplier: int = 6
    operation_timeout: float = 5.0


@dataclass
class RateLimitSettings:
    """Per client IP rate limiting settings."""

    enabled: bool = True
    requests_per_second: int = 100
    retention_seconds: float = 60.0
    sweep_interval_seconds: float = 60.0
    shards: int = 1


@dataclass
class ServerSettings:
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 8080
    trust_forwarded_headers: bool = True


@dataclass
class LoggingSettings:
    """Logging settings."""

    level: str = "INFO"
    file: str | None = None


@dataclass
class CruxConfig:
    """Top level crux configuration."""

    cache: CacheSettings = field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    server: ServerSettings = field(default_factory=ServerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Reject values the cache and limiter cannot operate with."""
        if self.cache.off_hours_multiplier < 1:
            raise ConfigurationError("off-hours multiplier must be >= 1", "cache.off_hours_multiplier")
        if self.cache.operation_timeout <= 0:
            raise ConfigurationError("cache operation timeout must be positive", "cache.operation_timeout")
        if self.rate_limit.requests_per_second < 1:
            raise ConfigurationError("requests per second must be >= 1", "rate_limit.requests_per_second")
        if self.rate_limit.retention_seconds <= 0:
            raise ConfigurationError("visitor retention must be positive", "rate_limit.retention_seconds")
        if self.rate_limit.sweep_interval_seconds <= 0:
            raise ConfigurationError("sweep interval must be positive", "rate_limit.sweep_interval_seconds")
        if self.rate_limit.shards < 1:
            raise ConfigurationError("shard count must be >= 1", "rate_limit.shards")

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> CruxConfig:
        """Build a configuration from nested dictionaries."""
        try:
            return cls(
                cache=CacheSettings(**config_dict.get("cache", {})),
                rate_limit=RateLimitSettings(**config_dict.get("rate_limit", {})),
                server=ServerSettings(**config_dict.get("server", {})),
                logging=LoggingSettings(**config_dict.get("logging", {})),
            )
        except TypeError as e:
            raise ConfigurationError(f"unknown configuration key: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "cache": asdict(self.cache),
            "rate_limit": asdict(self.rate_limit),
            "server": asdict(self.server),
            "logging": asdict(self.logging),
        }


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


# env var -> (section, key, parser)
_ENV_SETTINGS: dict[str, tuple[str, str, Any]] = {
    "CRUX_CACHE_DB_PATH": ("cache", "db_path", str),
    "CRUX_CACHE_OFF_HOURS_MULTIPLIER": ("cache", "off_hours_multiplier", int),
    "CRUX_CACHE_TIMEOUT": ("cache", "operation_timeout", float),
    "CRUX_RATE_LIMIT_ENABLED": ("rate_limit", "enabled", _env_bool),
    "CRUX_RATE_LIMIT_RPS": ("rate_limit", "requests_per_second", int),
    "CRUX_RATE_LIMIT_RETENTION": ("rate_limit", "retention_seconds", float),
    "CRUX_RATE_LIMIT_SWEEP_INTERVAL": ("rate_limit", "sweep_interval_seconds", float),
    "CRUX_RATE_LIMIT_SHARDS": ("rate_limit", "shards", int),
    "CRUX_HOST": ("server", "host", str),
    "CRUX_PORT": ("server", "port", int),
    "CRUX_TRUST_FORWARDED": ("server", "trust_forwarded_headers", _env_bool),
    "CRUX_LOG_LEVEL": ("logging", "level", str),
    "CRUX_LOG_FILE": ("logging", "file", str),
}


def load_config_from_env(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Collect configuration overrides from ``CRUX_*`` environment variables."""
    env = os.environ if environ is None else environ
    config: dict[str, Any] = {}

    for name, (section, key, parser) in _ENV_SETTINGS.items():
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        try:
            value = parser(raw)
        except ValueError as e:
            raise ConfigurationError(f"invalid value for {name}: {raw!r}", f"{section}.{key}") from e
        config.setdefault(section, {})[key] = value

    return config


def _deep_update(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    for k, v in updates.items():
        if isinstance(v, dict):
            base[k] = _deep_update(base.get(k, {}), v)
        else:
            base[k] = v
    return base


class ConfigManager:
    """Loads configuration from a TOML file and the environment."""

    def __init__(self, config_path: Path | None = None, environ: dict[str, str] | None = None):
        """
        Args:
            config_path: TOML file path, defaults to ``~/.crux/config.toml``
            environ: environment mapping, defaults to ``os.environ``
        """
        self.config_path = config_path or Path.home() / ".crux" / "config.toml"
        self._environ = environ
        self.config = self._load_config()

    def _load_file(self) -> dict[str, Any]:
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path, "rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Failed to load config from {self.config_path}: {e}")
            return {}

    def _load_config(self) -> CruxConfig:
        config_dict = _deep_update(self._load_file(), load_config_from_env(self._environ))
        return CruxConfig.from_dict(config_dict)

    def get_config(self) -> CruxConfig:
        return self.config

    def update_config(self, **updates: Any) -> None:
        """Apply nested updates, e.g. ``update_config(rate_limit={"shards": 4})``."""
        self.config = CruxConfig.from_dict(_deep_update(self.config.to_dict(), updates))
