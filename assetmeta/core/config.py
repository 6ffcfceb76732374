from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReverseGeocodingConfig(BaseModel):
    """Immutable snapshot of the reverse geocoding configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    cities_file_override: str = "cities500"


class Settings(BaseSettings):
    """Centralised runtime configuration for the metadata pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="ASSETMETA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./assetmeta.db",
        description="SQLAlchemy compatible DSN.",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for background jobs.",
    )

    media_root: Path = Field(default_factory=lambda: Path("library"), description="Root for derived media files.")
    storage_backend: Literal["local"] = Field(default="local", description="Active storage implementation.")

    job_queue_backend: Literal["immediate", "inline", "rq"] = Field(
        default="immediate",
        description="Backend for async jobs (inline executes inline; rq schedules via Redis).",
    )
    jobs_asset_pagination_size: int = Field(default=1000, description="Batch size when paging over assets.")

    exiftool_path: str = Field(default="exiftool", description="Executable used to read embedded metadata.")
    exiftool_timeout_s: float = Field(default=60.0, description="Upper bound for a single exiftool invocation.")

    reverse_geocoding_enabled: bool = Field(default=True)
    reverse_geocoding_cities_file_override: str = Field(
        default="cities500",
        description="Data file (or dataset name) used to build the reverse geocoding index.",
    )

    encoded_video_extension: str = Field(default=".mp4", description="Extension for videos carved out of motion photos.")

    @property
    def normalized_job_backend(self) -> str:
        if self.job_queue_backend == "inline":
            return "immediate"
        return self.job_queue_backend

    @property
    def reverse_geocoding(self) -> ReverseGeocodingConfig:
        return ReverseGeocodingConfig(
            enabled=self.reverse_geocoding_enabled,
            cities_file_override=self.reverse_geocoding_cities_file_override,
        )


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "ASSETMETA_DB_URL": "ASSETMETA_DATABASE_URL",
        "ASSETMETA_JOB_BACKEND": "ASSETMETA_JOB_QUEUE_BACKEND",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()
    if settings.jobs_asset_pagination_size <= 0:
        raise ValueError("jobs_asset_pagination_size must be positive.")
    return settings


__all__ = ["ReverseGeocodingConfig", "Settings", "get_settings"]
