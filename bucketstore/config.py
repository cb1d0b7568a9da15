"""Bucket configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Bucket settings loaded from BUCKETSTORE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BUCKETSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend selection
    storage_backend: Literal["filesystem", "s3"] = "filesystem"

    # Filesystem
    filesystem_root: str = "./data"

    # S3/MinIO
    s3_bucket: str = ""
    s3_prefix: str = ""
    s3_endpoint_url: str | None = None  # Set for MinIO, None for AWS S3
    s3_region: str = "us-east-1"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
