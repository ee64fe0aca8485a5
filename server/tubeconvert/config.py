from __future__ import annotations


from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    provider: str = Field("savetube", alias="PROVIDER")

    savetube_cdn_url: str = Field("https://media.savetube.me/api/random-cdn", alias="SAVETUBE_CDN_URL")
    savetube_secret_key: str = Field("C5D58EF67A7584E4A29F6C35BBC4EB12", alias="SAVETUBE_SECRET_KEY")
    savetube_referer: str = Field("https://yt.savetube.me/", alias="SAVETUBE_REFERER")
    savetube_download_referer: str = Field(
        "https://yt.savetube.me/start-download", alias="SAVETUBE_DOWNLOAD_REFERER"
    )

    loader_submit_url: str = Field("https://loader.to/ajax/download.php", alias="LOADER_SUBMIT_URL")
    loader_progress_url: str = Field("https://p.oceansaver.in/ajax/progress.php", alias="LOADER_PROGRESS_URL")
    oembed_url: str = Field("https://www.youtube.com/oembed", alias="OEMBED_URL")

    http_timeout_seconds: float = Field(15.0, alias="HTTP_TIMEOUT_SECONDS")
    poll_interval_seconds: float = Field(3.0, alias="POLL_INTERVAL_SECONDS")
    poll_max_consecutive_errors: int = Field(10, alias="POLL_MAX_CONSECUTIVE_ERRORS")
    poll_timeout_seconds: float = Field(900.0, alias="POLL_TIMEOUT_SECONDS")

    redis_url: str = Field("redis://localhost:6379/0", alias="REDIS_URL")
    rate_limit_per_minute: int = Field(60, alias="RATE_LIMIT_PER_MINUTE")
    rate_limit_storage_uri: str = Field("memory://", alias="RATE_LIMIT_STORAGE_URI")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    static_dir: Optional[Path] = Field(None, alias="STATIC_DIR")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("savetube_secret_key")
    @classmethod
    def _check_secret_key(cls, value: str) -> str:
        value = value.strip()
        try:
            raw = bytes.fromhex(value)
        except ValueError as exc:
            raise ValueError("SAVETUBE_SECRET_KEY must be hex encoded") from exc
        if len(raw) != 16:
            raise ValueError("SAVETUBE_SECRET_KEY must encode a 128-bit key")
        return value

    @property
    def normalized_provider(self) -> str:
        value = self.provider.lower()
        aliases = {
            "sync": "savetube",
            "extraction": "savetube",
            "async": "loader",
            "job": "loader",
        }
        return aliases.get(value, value)


@lru_cache
def get_settings() -> Settings:
    return Settings()
