"""Configuration and logging setup for mattertime."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class MatterTimeSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    config_dir: Path = Field(
        default=Path.home() / ".config" / "mattertime", validation_alias="MATTERTIME_CONFIG_DIR"
    )
    log_level: str = Field(default="WARNING", validation_alias="MATTERTIME_LOG_LEVEL")
    warning_hours: float = Field(default=8.0, validation_alias="MATTERTIME_WARNING_HOURS")
    auto_stop_hours: float = Field(default=24.0, validation_alias="MATTERTIME_AUTO_STOP_HOURS")
    recovery_gap_warning_minutes: float = Field(
        default=5.0, validation_alias="MATTERTIME_RECOVERY_GAP_MINUTES"
    )
    recent_entry_limit: int = Field(default=200, validation_alias="MATTERTIME_RECENT_ENTRY_LIMIT")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in _LOG_LEVELS:
            raise ValueError(
                "MATTERTIME_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("warning_hours", "auto_stop_hours", "recovery_gap_warning_minutes")
    @classmethod
    def _require_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timer thresholds must be positive")
        return value

    @field_validator("recent_entry_limit")
    @classmethod
    def _validate_recent_entry_limit(cls, value: int) -> int:
        if value < 1:
            raise ValueError("MATTERTIME_RECENT_ENTRY_LIMIT must be >= 1")
        return value

    @model_validator(mode="after")
    def _auto_stop_after_warning(self) -> "MatterTimeSettings":
        if self.auto_stop_hours <= self.warning_hours:
            raise ValueError("MATTERTIME_AUTO_STOP_HOURS must exceed MATTERTIME_WARNING_HOURS")
        return self

    @property
    def warning_seconds(self) -> float:
        return self.warning_hours * 3600.0

    @property
    def auto_stop_seconds(self) -> float:
        return self.auto_stop_hours * 3600.0

    @property
    def recovery_gap_warning_seconds(self) -> float:
        return self.recovery_gap_warning_minutes * 60.0


@lru_cache(maxsize=1)
def get_settings() -> MatterTimeSettings:
    """Return cached settings instance."""

    settings = MatterTimeSettings()
    settings.config_dir = settings.config_dir.expanduser().resolve()
    return settings


def configure_logging(level: str) -> None:
    """Configure root logging for the mattertime command line."""

    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


__all__ = ["MatterTimeSettings", "configure_logging", "get_settings"]
