"""Application settings loaded from the environment."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


class Settings(BaseSettings):
    """Runtime configuration; every field can be set as ``CUT_TRACKER_<NAME>``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CUT_TRACKER_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = "Cut Tracker"
    database_path: str = "cut_tracker.sqlite3"
    inactivity_minutes: int = Field(
        default=30,
        ge=1,
        validation_alias=AliasChoices(
            "CUT_TRACKER_INACTIVITY_MINUTES", "JOB_INACTIVITY_MINUTES"
        ),
    )
    reaper_interval_seconds: float = Field(default=60.0, gt=0)
    reaper_enabled: bool = True
    max_sheets_per_track: int = Field(default=10_000, ge=1)
    log_level: LogLevel = "INFO"

    @property
    def inactivity(self) -> timedelta:
        return timedelta(minutes=self.inactivity_minutes)


@lru_cache
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
