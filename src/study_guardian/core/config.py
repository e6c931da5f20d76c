"""Configuration management with Pydantic and YAML support."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from study_guardian.focus.models import TimerConfiguration


class TimerSettings(BaseModel):
    """Default durations used when no preset is selected."""

    work_minutes: int = Field(default=25, ge=1, le=120)
    short_break_minutes: int = Field(default=5, ge=1, le=30)
    long_break_minutes: int = Field(default=15, ge=1, le=60)
    cycles_before_long_break: int = Field(default=4, ge=2, le=10)
    manual_advance: bool = Field(
        default=False, description="Wait for the user between phases instead of auto-starting"
    )
    tick_interval_seconds: float = Field(default=1.0, gt=0, description="Driver wake-up period")

    def to_configuration(self) -> TimerConfiguration:
        """Build the immutable timer configuration."""
        return TimerConfiguration(
            work_duration_seconds=self.work_minutes * 60,
            short_break_duration_seconds=self.short_break_minutes * 60,
            long_break_duration_seconds=self.long_break_minutes * 60,
            cycles_before_long_break=self.cycles_before_long_break,
            manual_advance=self.manual_advance,
        )


class SyncSettings(BaseModel):
    """REST backend and offline queue configuration."""

    enabled: bool = True
    api_url: str = Field(default="http://localhost:5000/api")
    api_token: str | None = Field(default=None, description="Bearer token for the API")
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=5, ge=1, description="Redelivery attempts before giving up")
    flush_interval_seconds: int = Field(default=60, ge=1)
    history_limit: int = Field(default=100, ge=1, description="Local session history kept")


class NotificationSettings(BaseModel):
    """Which notification targets fire when a phase ends."""

    audio_enabled: bool = True
    banner_enabled: bool = True
    system_enabled: bool = True
    alert_repeat_count: int = Field(default=3, ge=1, le=20)
    alert_repeat_interval_seconds: float = Field(default=2.0, gt=0)


class Settings(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STUDY_GUARDIAN_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".study-guardian")
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config/study-guardian")

    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    # Sub-configurations
    timer: TimerSettings = Field(default_factory=TimerSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats the YAML file, which arrives as init data
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def db_path(self) -> Path:
        """Path to SQLite database."""
        return self.data_dir / "study_guardian.db"

    @property
    def log_file(self) -> Path:
        return self.data_dir / "logs" / "study_guardian.log"

    @property
    def config_file(self) -> Path:
        """Path to YAML config file."""
        return self.config_dir / "config.yaml"

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.data_dir, 0o700)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Settings:
        """Load configuration from YAML file, environment variables, and defaults.

        Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values
        """
        config_path = config_path or Path.home() / ".config/study-guardian/config.yaml"

        yaml_config: dict[str, Any] = {}
        if config_path.exists():
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}

        return cls(**yaml_config)

    def save(self, config_path: Path | None = None) -> None:
        """Save current configuration to YAML file."""
        config_path = config_path or self.config_file
        config_path.parent.mkdir(parents=True, exist_ok=True)

        # The API token stays in the environment
        data = self.model_dump(exclude={"sync": {"api_token"}}, exclude_none=True)

        for key in ["data_dir", "config_dir"]:
            if key in data:
                data[key] = str(data[key])

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        os.chmod(config_path, 0o600)


@lru_cache
def get_settings() -> Settings:
    """Get cached configuration instance."""
    return Settings.load()
