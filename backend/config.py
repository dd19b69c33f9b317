"""Application configuration using pydantic-settings."""

from decimal import Decimal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./ledger.db"

    # SimpleFIN access URL used when a connection carries no credentials of its own
    SIMPLEFIN_ACCESS_URL: str = ""

    # Sync orchestration
    SYNC_WINDOW_DAYS: int = 90
    SYNC_MAX_ATTEMPTS: int = 3
    SYNC_BACKOFF_BASE_SECONDS: float = 2.0
    SYNC_BACKOFF_MAX_SECONDS: float = 60.0

    # Relink heuristics
    RELINK_LAST4_BALANCE_TOLERANCE: Decimal = Decimal("1.00")
    RELINK_BALANCE_EPSILON: Decimal = Decimal("0.01")

    # Market data plan restrictions
    MARKET_DATA_PROVIDER: str = "twelve_data"
    PLAN_RESTRICTION_TTL_DAYS: int = 7

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    @field_validator("SYNC_MAX_ATTEMPTS")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        """A pass must be allowed to run at least once."""
        if v < 1:
            raise ValueError(f"SYNC_MAX_ATTEMPTS must be >= 1, got {v}")
        return v

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
