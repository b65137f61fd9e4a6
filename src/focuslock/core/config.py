"""Configuration management with Pydantic and YAML support."""

from __future__ import annotations

import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_data_dir() -> Path:
    """Return the platform-appropriate data directory."""
    if sys.platform == "darwin":
        return Path.home() / "Library/Application Support/FocusLock"
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / "FocusLock"
    return Path.home() / ".focuslock"


class TimerConfig(BaseModel):
    """Session timer configuration."""

    tick_interval_seconds: float = Field(
        default=0.25, ge=0.1, le=1.0, description="Countdown refresh resolution"
    )


class MonitorConfig(BaseModel):
    """Block monitor configuration."""

    scan_interval_seconds: float = Field(default=2.0, gt=0, description="Process scan period")
    kill_timeout_seconds: float = Field(
        default=5.0, gt=0, le=30, description="Wait for a terminated process before giving up"
    )
    warn_cooldown_seconds: float = Field(
        default=0.0, ge=0, description="Minimum gap between warnings for the same rule (0 = every scan)"
    )
    site_blocking_enabled: bool = Field(
        default=False, description="Edit the hosts file for site rules (needs admin rights)"
    )


class NotificationConfig(BaseModel):
    """Desktop notification configuration."""

    enabled: bool = True
    command_timeout_seconds: float = Field(default=5.0, gt=0)


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FOCUSLOCK_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default_factory=default_data_dir)
    log_dir: Path = Field(default_factory=lambda: default_data_dir() / "logs")
    config_dir: Path = Field(default_factory=default_data_dir)

    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    # Sub-configurations
    timer: TimerConfig = Field(default_factory=TimerConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment first so it outranks the YAML values passed as init data
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def db_path(self) -> Path:
        """Path to the SQLite session database."""
        return self.data_dir / "focuslock.db"

    @property
    def settings_file(self) -> Path:
        """Path to the user settings file (durations, block rules)."""
        return self.data_dir / "settings.yaml"

    @property
    def hosts_backup_file(self) -> Path:
        """Path to the hosts file backup taken before site blocking."""
        return self.data_dir / "hosts.backup"

    @property
    def config_file(self) -> Path:
        """Path to YAML config file."""
        return self.config_dir / "config.yaml"

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """Load configuration from YAML file, environment variables, and defaults.

        Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values
        """
        config_path = config_path or default_data_dir() / "config.yaml"

        yaml_config: dict[str, Any] = {}
        if config_path.exists():
            try:
                with open(config_path) as f:
                    yaml_config = yaml.safe_load(f) or {}
            except yaml.YAMLError:
                yaml_config = {}
            if not isinstance(yaml_config, dict):
                yaml_config = {}

        # Create config with YAML as init data, env vars will override
        return cls(**yaml_config)

    def save(self, config_path: Path | None = None) -> None:
        """Save current configuration to YAML file."""
        config_path = config_path or self.config_file
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json", exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


@lru_cache
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config.load()
