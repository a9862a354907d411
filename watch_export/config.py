"""Application configuration models."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="crexport", alias="APP_NAME")

    crunchyroll_username: str | None = Field(default=None, alias="CR_USERNAME")
    crunchyroll_password: str | None = Field(default=None, alias="CR_PASSWORD")
    crunchyroll_access_token: str | None = Field(
        default=None, alias="CR_ACCESS_TOKEN"
    )
    crunchyroll_account_id: str | None = Field(default=None, alias="CR_ACCOUNT_ID")
    crunchyroll_client_id: str | None = Field(default=None, alias="CR_CLIENT_ID")
    crunchyroll_client_secret: str | None = Field(
        default=None, alias="CR_CLIENT_SECRET"
    )
    crunchyroll_api_url: HttpUrl = Field(
        default="https://www.crunchyroll.com", alias="CR_API_URL"
    )
    crunchyroll_locale: str = Field(default="en-US", alias="CR_LOCALE")

    history_limit: int = Field(default=0, alias="HISTORY_LIMIT", ge=0, le=100_000)
    history_page_size: int = Field(
        default=100, alias="HISTORY_PAGE_SIZE", ge=1, le=1_000
    )

    cutoff_file: Path = Field(default=Path("cutoff_date.txt"), alias="CUTOFF_FILE")
    output_dir: Path = Field(default=Path("."), alias="OUTPUT_DIR")
    output_basename: str = Field(default="show_data.json", alias="OUTPUT_BASENAME")
    strict_cutoff: bool = Field(default=False, alias="STRICT_CUTOFF")

    request_max_retries: int = Field(
        default=3, alias="REQUEST_MAX_RETRIES", ge=0, le=10
    )
    request_retry_backoff: float = Field(
        default=1.0, alias="REQUEST_RETRY_BACKOFF", ge=0
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("output_basename", mode="before")
    @classmethod
    def _normalise_basename(cls, value: object) -> str:
        """Snapshots are always JSON files sitting directly in ``output_dir``."""

        name = str(value or "").strip()
        if not name:
            return "show_data.json"
        if "/" in name or "\\" in name:
            raise ValueError("OUTPUT_BASENAME must be a bare file name")
        if not name.lower().endswith(".json"):
            name = f"{name}.json"
        return name

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: object) -> str:
        level = str(value or "INFO").strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level {value!r}")
        return level

    @property
    def resolved_history_limit(self) -> int | None:
        """Return the distinct-series cap, or ``None`` when unlimited."""

        return self.history_limit or None

    @property
    def has_static_token(self) -> bool:
        return bool(self.crunchyroll_access_token and self.crunchyroll_account_id)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]
