"""Environment-driven configuration with pydantic-settings."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fetchcache.duration import parse_duration

DEFAULT_API_URL = "http://localhost:5000/api"


class Settings(BaseSettings):
    """Settings read from ``FETCHCACHE_*`` environment variables or ``.env``."""

    # Backend
    api_url: str = Field(default=DEFAULT_API_URL)
    request_timeout: float = Field(default=30.0, gt=0)
    login_path: str = Field(default="/login")

    # Cache
    default_ttl: str = Field(default="5m")
    cache_max_items: int | None = Field(default=None, ge=1)

    # Rate limiting
    rate_limit_wait_ms: int = Field(default=5000, ge=0)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="FETCHCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_ttl")
    @classmethod
    def validate_ttl(cls, v: str) -> str:
        parse_duration(v)
        return v

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


__all__ = ["DEFAULT_API_URL", "Settings", "get_settings"]
