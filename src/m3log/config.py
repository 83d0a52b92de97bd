"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation,
with an optional config.yaml providing defaults.
"""

import os
import yaml
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        possible_paths = [
            "config.yaml",
            "../../config.yaml",
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


class StorageSettings(BaseSettings):
    """SQLite storage configuration."""

    data_dir: Path = Field(default=Path("./data"), description="Directory holding the log database")
    db_filename: str = Field(default="logs.db", description="Database file name inside data_dir")

    @property
    def db_path(self) -> Path:
        """Full path of the database file."""
        return self.data_dir / self.db_filename

    class Config:
        env_prefix = "M3LOG_STORAGE_"


class RetentionSettings(BaseSettings):
    """Retention sweep configuration."""

    enabled: bool = Field(default=True, description="Run the background retention sweeper")
    retention_days: int = Field(default=7, description="Days of history to keep, by client date")
    interval_hours: float = Field(default=24, description="Hours between sweeps")
    initial_delay_seconds: float = Field(default=5, description="Delay before the startup sweep")

    @field_validator("retention_days")
    def validate_retention_days(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retention_days cannot be negative")
        return v

    class Config:
        env_prefix = "M3LOG_RETENTION_"


class QuerySettings(BaseSettings):
    """Query engine configuration."""

    default_limit: int = Field(default=1000, description="Result cap when no limit is given")

    class Config:
        env_prefix = "M3LOG_QUERY_"


class SecuritySettings(BaseSettings):
    """Gates for the raw SQL escape hatch."""

    raw_query_enabled: bool = Field(default=True, description="Expose POST /api/query/sql")
    admin_token: str = Field(default="", description="Bearer token required for raw queries (empty: none)")

    class Config:
        env_prefix = "M3LOG_SECURITY_"


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    # Component settings
    storage: StorageSettings = Field(default_factory=StorageSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    query: QuerySettings = Field(default_factory=QuerySettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    class Config:
        env_prefix = "M3LOG_"
        case_sensitive = False


# Plain variable names accepted for container deployments
LEGACY_ENV_VARS = {
    "PORT": "M3LOG_PORT",
    "DATA_DIR": "M3LOG_STORAGE_DATA_DIR",
    "RETENTION_DAYS": "M3LOG_RETENTION_RETENTION_DAYS",
}


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""

    _set_env_from_legacy()

    # Config file provides defaults, env vars override
    config_data = load_config_file()
    if config_data:
        _set_env_from_config(config_data)

    return Settings()


def _set_env_from_legacy() -> None:
    """Copy bare PORT/DATA_DIR/RETENTION_DAYS into the prefixed names if unset."""
    for legacy, env_var in LEGACY_ENV_VARS.items():
        if env_var not in os.environ and os.environ.get(legacy):
            os.environ[env_var] = os.environ[legacy]


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        ("server", "host"): "M3LOG_HOST",
        ("server", "port"): "M3LOG_PORT",
        ("server", "debug"): "M3LOG_DEBUG",
        ("server", "log_level"): "M3LOG_LOG_LEVEL",
        ("storage", "data_dir"): "M3LOG_STORAGE_DATA_DIR",
        ("storage", "db_filename"): "M3LOG_STORAGE_DB_FILENAME",
        ("retention", "enabled"): "M3LOG_RETENTION_ENABLED",
        ("retention", "retention_days"): "M3LOG_RETENTION_RETENTION_DAYS",
        ("retention", "interval_hours"): "M3LOG_RETENTION_INTERVAL_HOURS",
        ("retention", "initial_delay_seconds"): "M3LOG_RETENTION_INITIAL_DELAY_SECONDS",
        ("query", "default_limit"): "M3LOG_QUERY_DEFAULT_LIMIT",
        ("security", "raw_query_enabled"): "M3LOG_SECURITY_RAW_QUERY_ENABLED",
        ("security", "admin_token"): "M3LOG_SECURITY_ADMIN_TOKEN",
    }

    for (section, key), env_var in mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value is not None:
                os.environ[env_var] = str(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
