"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables prefixed with
``CACHEGATE_`` (or a .env file in dev). Middleware options that are not
passed explicitly fall back to these values.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

THIRTY_DAYS = 60 * 60 * 24 * 30


class Environment(StrEnum):
    DEV = "dev"
    PROD = "prod"
    TEST = "test"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CACHEGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Application
    # ------------------------------------------------------------------ #
    environment: Environment = Environment.DEV
    debug: bool = False

    # ------------------------------------------------------------------ #
    # Backend
    # ------------------------------------------------------------------ #
    redis_url: str = Field(
        default="",
        description="Redis connection URL. Empty selects the in-memory backend.",
    )

    # ------------------------------------------------------------------ #
    # Response cache
    # ------------------------------------------------------------------ #
    enabled: bool = Field(
        default=True,
        description="When False every request is passed through as BYPASS",
    )
    default_expiry_seconds: int = Field(
        default=THIRTY_DAYS,
        gt=0,
        description="TTL applied when neither the route nor Cache-Control sets one",
    )
    cache_max_age: int | None = Field(
        default=None,
        ge=0,
        description="Global max-age override, used when a route sets none",
    )
    headers_key_suffix: str = Field(
        default=".headers",
        min_length=1,
        description="Suffix appended to a cache key to store the response headers",
    )

    @model_validator(mode="after")
    def _validate_prod(self) -> "Settings":
        if self.environment == Environment.PROD and self.debug:
            raise ValueError("CACHEGATE_DEBUG must be disabled in production")
        return self

    @property
    def is_dev(self) -> bool:
        return self.environment in (Environment.DEV, Environment.TEST)

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PROD


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings singleton.

    Call directly at startup, or use Depends(get_settings) in endpoints.
    """
    return Settings()
