"""Runtime configuration for the voice booking service."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, HttpUrl, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration sourced from environment variables (prefix ``VOICE_BOOKING_``)."""

    access_token: SecretStr = Field(SecretStr(""))
    api_base_url: HttpUrl = Field("https://connect.squareup.com/v2")
    api_version: str = Field("2025-01-23")
    timeout_seconds: float = Field(10.0, gt=0)
    default_timezone: str = Field("America/Los_Angeles")

    match_threshold: float = Field(50.0, ge=0, le=100)
    ambiguity_window: float = Field(10.0, ge=0, le=100)
    default_range_days: int = Field(7, ge=1, le=60)
    max_dates: int = Field(3, ge=1)
    max_slots_per_date: int = Field(5, ge=1)

    log_level: str = Field("INFO")

    model_config = SettingsConfigDict(
        env_prefix="VOICE_BOOKING_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def base_url(self) -> str:
        return str(self.api_base_url).rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings()
