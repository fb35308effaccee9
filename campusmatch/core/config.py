from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from campusmatch.core.version import __version__


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    APP_ENV: Literal["development", "production", "test"] = "production"
    LOG_LEVEL: str = "INFO"

    # Storage
    STORE_BACKEND: Literal["memory", "redis"] = "redis"
    REDIS_URL: str = "redis://localhost:6379/0"
    # Maximum number of connections Redis client will open per process
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_KEY_PREFIX: str = "campusmatch:"

    # Scoring normalizers (not user supplied)
    AGE_TOLERANCE_SPAN: float = Field(default=10.0, gt=0)  # years
    YEAR_TOLERANCE_SPAN: float = Field(default=4.0, gt=0)  # academic years
    MAX_DISTANCE_NORMALIZER_KM: float = Field(default=100.0, gt=0)
    TRAIT_SCALE_MIN: int = 0
    TRAIT_SCALE_MAX: int = 100
    # Weight substituted for every factor when a user has no usable weights
    DEFAULT_WEIGHT: float = 1.0

    # Ranking
    MIN_MATCH_SCORE: float = 30.0
    DEFAULT_MATCH_LIMIT: int = 10
    MUTUAL_GENDER_FILTER: bool = True
    CANDIDATE_POOL_LIMIT: int = 5000
    RANKING_TIMEOUT_SECONDS: float = 10.0

    # Feature cache / score cards
    FEATURE_CACHE_SIZE: int = 10000
    FEATURE_CACHE_TTL_SECONDS: int = 300
    SCORECARD_TTL_SECONDS: int = 86400  # 24 hours
    SCORECARD_WRITE_THROUGH: bool = True
    SCORECARD_CONCURRENCY: int = 16


settings = Settings()

APP_VERSION = __version__
