"""
Configuration management for the storefront service.

Loads settings from an optional YAML config file, then applies environment
variable overrides, and provides typed access.
"""
from dataclasses import dataclass, fields
from pathlib import Path
import os
from typing import Any, Dict, Optional
import yaml

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()


def _project_root() -> Path:
    """Return project root (parent of storefront package)."""
    return Path(__file__).resolve().parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"

# Environment variable name -> config field
_ENV_OVERRIDES = {
    "DATABASE_URL": "database_url",
    "REDIS_URL": "redis_url",
    "UPSTASH_REDIS_URL": "redis_url",
    "CACHE_TTL_DYNAMIC_DATA": "cache_ttl_seconds",
    "CACHE_MAX_ENTRIES": "cache_max_entries",
    "MAX_BATCH_SIZE": "max_batch_size",
    "DEFAULT_TIMEZONE": "default_timezone",
    "DEFAULT_CUTOFF_TIME": "default_cutoff",
    "DEFAULT_LEAD_DAYS": "default_lead_days",
    "LOG_LEVEL": "log_level",
}


@dataclass
class StorefrontConfig:
    """Configuration for the dynamic product data service."""

    # Storage
    database_url: str = "sqlite:///./storefront.db"
    redis_url: Optional[str] = None     # None = in-process cache

    # Aggregation cache
    cache_ttl_seconds: int = 300        # 5 minutes
    cache_max_entries: int = 1000       # in-memory cache only

    # Batch limits
    max_batch_size: int = 1000

    # City fallbacks when the cities row leaves a column empty
    default_timezone: str = "Europe/Moscow"
    default_cutoff: str = "16:00"
    default_lead_days: int = 3

    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "StorefrontConfig":
        """Load configuration from YAML file."""
        path = config_path or DEFAULT_CONFIG_PATH
        if not path.exists():
            return cls()

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        storage = data.get('storage', {})
        cache = data.get('cache', {})
        delivery = data.get('delivery', {})

        return cls(
            database_url=storage.get('database_url', cls.database_url),
            redis_url=storage.get('redis_url'),
            cache_ttl_seconds=cache.get('ttl_seconds', 300),
            cache_max_entries=cache.get('max_entries', 1000),
            max_batch_size=data.get('max_batch_size', 1000),
            default_timezone=delivery.get('default_timezone', 'Europe/Moscow'),
            default_cutoff=str(delivery.get('default_cutoff', '16:00')),
            default_lead_days=delivery.get('default_lead_days', 3),
            log_level=data.get('log_level', 'INFO'),
        )

    @classmethod
    def from_env(cls, base: Optional["StorefrontConfig"] = None,
                 environ: Optional[Dict[str, str]] = None) -> "StorefrontConfig":
        """Overlay environment variables on top of ``base`` (or the defaults)."""
        config = base or cls()
        env = os.environ if environ is None else environ
        types = {f.name: f.type for f in fields(cls)}
        for var, attr in _ENV_OVERRIDES.items():
            value = env.get(var)
            if not value:
                continue
            setattr(config, attr, _coerce(value, types[attr]))
        return config


def _coerce(value: str, annotation: Any) -> Any:
    if annotation in (int, "int"):
        return int(value)
    return value


# Global config instance
_config: Optional[StorefrontConfig] = None


def get_config() -> StorefrontConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = StorefrontConfig.from_env(StorefrontConfig.from_yaml())
    return _config


def set_config(config: Optional[StorefrontConfig]) -> None:
    """Set the global configuration instance (None forces a reload)."""
    global _config
    _config = config
