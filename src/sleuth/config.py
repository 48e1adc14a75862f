"""Configuration loading and validation for sleuth."""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_config_dir() -> Path:
    """Get the configuration directory."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "sleuth"
    return Path.home() / ".config" / "sleuth"


def get_data_dir() -> Path:
    """Get the data directory for the message store and result cache."""
    xdg_data = os.environ.get("XDG_DATA_HOME")
    if xdg_data:
        return Path(xdg_data) / "sleuth"
    return Path.home() / ".local" / "share" / "sleuth"


class SearchConfig(BaseModel):
    """Search execution settings."""

    default_limit: int = Field(default=50, ge=1, le=100)
    max_limit: int = Field(default=100, ge=1, le=100)
    cache_ttl_seconds: int = Field(default=60, ge=1, description="Result page TTL")
    suggestion_pool: int = Field(default=5, ge=1, description="Top senders/subjects inspected")
    max_suggestions: int = Field(default=5, ge=0)

    @model_validator(mode="after")
    def validate_limits(self) -> "SearchConfig":
        if self.default_limit > self.max_limit:
            raise ValueError(
                f"default_limit ({self.default_limit}) exceeds max_limit ({self.max_limit})"
            )
        return self


class StorageConfig(BaseModel):
    """Where the message store and result cache live."""

    db_path: Path | None = None
    cache_path: Path | None = None

    @field_validator("db_path", "cache_path")
    @classmethod
    def expand_user(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None


class SleuthConfig(BaseModel):
    """Root configuration for sleuth."""

    default_user: str = ""
    log_level: str = "WARNING"
    search: SearchConfig = Field(default_factory=SearchConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level '{value}', expected one of {', '.join(LOG_LEVELS)}")
        return level

    def get_user(self, user: str | None = None) -> str:
        """Resolve the user to search as."""
        user = user or self.default_user
        if not user:
            raise ValueError("No user specified and no default_user configured")
        return user


_config: SleuthConfig | None = None


def load_config(config_path: Path | None = None) -> SleuthConfig:
    """Load configuration from YAML file."""
    global _config

    if config_path is None:
        config_path = get_config_dir() / "config.yaml"

    if not config_path.exists():
        _config = SleuthConfig()
        return _config

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    _config = SleuthConfig.model_validate(data)
    return _config


def get_config() -> SleuthConfig:
    """Get the current configuration, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def save_config(config: SleuthConfig, config_path: Path | None = None) -> None:
    """Save configuration to YAML file."""
    if config_path is None:
        config_path = get_config_dir() / "config.yaml"

    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="json", exclude_none=True)

    with open(config_path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def ensure_dirs() -> None:
    """Ensure configuration and data directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
