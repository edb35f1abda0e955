"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. All keys use
the ``SAGIP_`` prefix and may also be supplied through a ``.env`` file.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the Sagip directory service.

    Environment variables are loaded from a ``.env`` file when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="SAGIP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "*"

    # ── Rate Limiting ──────────────────────────────────────────────────
    trusted_proxy_count: int = Field(default=0, ge=0)
    rate_limit_sweep_interval_seconds: float = Field(default=60.0, gt=0)

    # ── Moderation ─────────────────────────────────────────────────────
    moderator_api_key: str = ""
    default_rejection_reason: str = "Did not meet directory requirements"
    verdict_ttl_seconds: int = Field(default=3_600, gt=0)  # one moderation session

    # ── Verification ───────────────────────────────────────────────────
    region: str = "PH"
    address_min_length: int = Field(default=10, ge=0)
    duplicate_proximity_degrees: float = Field(default=0.001, gt=0)  # ~100 m
    duplicate_read_attempts: int = Field(default=3, ge=1)

    # ── Storage ────────────────────────────────────────────────────────
    redis_url: str = ""
    directory_seed_path: str = ""

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
