"""
Kindred — Settings.

Every tunable comes from the environment (or a local ``.env``) through
pydantic-settings.  ``get_settings()`` caches the validated instance, so
services and the app factory share one ``Settings`` object per process.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Kindred backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database – Cloud SQL via Unix socket or plain URL
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    DB_USER: str = "kindred_user"
    DB_PASSWORD: str = ""
    DB_NAME: str = "kindred"
    CLOUD_SQL_INSTANCE_CONNECTION: str = ""
    CLOUD_SQL_USE_UNIX_SOCKET: bool = True

    # ------------------------------------------------------------------ #
    # Redis – optional, used for per-pair match locks
    # ------------------------------------------------------------------ #
    REDIS_URL: str = ""
    MATCH_LOCK_TIMEOUT_SECONDS: float = 5.0

    # ------------------------------------------------------------------ #
    # Credentials & tokens
    # ------------------------------------------------------------------ #
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_TTL_MINUTES: int = 60
    BCRYPT_ROUNDS: int = 10
    USERNAME_MAX_ATTEMPTS: int = 20

    # ------------------------------------------------------------------ #
    # Swipe / spin quotas
    # ------------------------------------------------------------------ #
    DEFAULT_SWIPE_LIMIT: int = 10
    DEFAULT_SPIN_LIMIT: int = 5
    DAILY_SWIPE_FLOOR: int = 20   # first login of the day raises swipe_limit to this
    DAILY_SPIN_FLOOR: int = 1

    # ------------------------------------------------------------------ #
    # Candidate feed
    # ------------------------------------------------------------------ #
    FEED_DEFAULT_LIMIT: int = 10
    FEED_MAX_LIMIT: int = 50
    SPINNER_CANDIDATE_LIMIT: int = 10
    PLACEHOLDER_PROFILE_PICTURE: str = "https://example.com/dummy-profile.jpg"

    # ------------------------------------------------------------------ #
    # Google Cloud Storage – profile images
    # ------------------------------------------------------------------ #
    GCP_PROJECT_ID: str = ""
    GCS_BUCKET_NAME: str = ""
    GCS_PROFILE_IMAGE_PREFIX: str = "profile-images/"
    MAX_PROFILE_IMAGE_BYTES: int = 5 * 1024 * 1024

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @field_validator("JWT_SECRET")
    @classmethod
    def _secret_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("JWT_SECRET must not be blank")
        return v

    @field_validator(
        "DEFAULT_SWIPE_LIMIT",
        "DEFAULT_SPIN_LIMIT",
        "DAILY_SWIPE_FLOOR",
        "DAILY_SPIN_FLOOR",
    )
    @classmethod
    def _quota_must_be_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Quota values must be >= 0, got {v}")
        return v

    @field_validator("USERNAME_MAX_ATTEMPTS", "FEED_MAX_LIMIT", "SPINNER_CANDIDATE_LIMIT")
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def _known_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown LOG_LEVEL {v!r}")
        return level


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """The process-wide ``Settings``; tests override via ``model_copy``."""
    return Settings()  # type: ignore[call-arg]
