"""Application settings using Pydantic for environment-based configuration."""
from datetime import timedelta
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Stripe Configuration
    stripe_secret_key: str = Field(..., description="Stripe secret API key (sk_test_...)")
    stripe_api_version: str = Field(default="2023-10-16", description="Stripe API version")
    stripe_platform_account_id: str = Field(
        ..., description="Platform Stripe account that receives collected balances"
    )

    # Database Configuration
    database_url: str = Field(..., description="Database connection URL")
    database_pool_size: int | None = Field(default=20, description="Database connection pool size")
    database_max_overflow: int | None = Field(
        default=50, description="Max database connection overflow"
    )
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Application Configuration
    app_name: str = Field(default="unclaimed-balances", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Unclaimed balance collection
    unclaimed_balance_inactive_after_days: int = Field(
        default=1096,
        description="Days without activity after which an account is considered inactive",
    )
    unclaimed_balance_country: str = Field(
        default="US", description="Country (ISO alpha-2) of merchant accounts to collect from"
    )
    unclaimed_balance_schedule_hour: int = Field(
        default=3, description="Hour of day (0-23) the collection worker runs"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("stripe_secret_key")
    @classmethod
    def validate_stripe_key(cls, v: str) -> str:
        """Validate that Stripe secret key has a known prefix."""
        if not v.startswith("sk_test_") and not v.startswith("sk_live_"):
            raise ValueError(
                "Invalid Stripe secret key format. Must start with 'sk_test_' or 'sk_live_'"
            )
        return v

    @field_validator("stripe_platform_account_id")
    @classmethod
    def validate_platform_account_id(cls, v: str) -> str:
        """Validate the platform account id looks like a Stripe account id."""
        if not v.startswith("acct_"):
            raise ValueError("Invalid Stripe platform account id. Must start with 'acct_'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("unclaimed_balance_schedule_hour")
    @classmethod
    def validate_schedule_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("Schedule hour must be between 0 and 23")
        return v

    @property
    def unclaimed_balance_inactive_after(self) -> timedelta:
        """Inactivity window as a timedelta."""
        return timedelta(days=self.unclaimed_balance_inactive_after_days)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @property
    def is_test_mode(self) -> bool:
        """Check if using Stripe test mode."""
        return self.stripe_secret_key.startswith("sk_test_")

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
