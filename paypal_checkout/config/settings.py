"""Application settings using Pydantic for environment-based configuration."""
from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Mode(str, Enum):
    """PayPal environment the credentials belong to."""

    SANDBOX = "SANDBOX"
    PRODUCTION = "PRODUCTION"


API_BASE_URLS = {
    Mode.SANDBOX: "https://api-m.sandbox.paypal.com",
    Mode.PRODUCTION: "https://api-m.paypal.com",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # PayPal Configuration
    paypal_client_id: str = Field(..., description="PayPal REST app client ID")
    paypal_client_secret: str = Field(..., description="PayPal REST app client secret")
    paypal_mode: Mode = Field(default=Mode.SANDBOX, description="SANDBOX or PRODUCTION")
    paypal_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Upper bound for every PayPal API call (seconds)"
    )
    paypal_create_prefer: str = Field(
        default="return=minimal", description="Prefer header sent with order creation"
    )
    paypal_capture_prefer: str = Field(
        default="return=minimal", description="Prefer header sent with order capture"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./paypal_checkout.db",
        description="SQLAlchemy async database URL",
    )
    database_pool_size: int = Field(default=10, description="Database connection pool size")
    database_max_overflow: int = Field(default=20, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Application Configuration
    app_name: str = Field(default="paypal-checkout", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("paypal_mode", mode="before")
    @classmethod
    def normalize_mode(cls, v: object) -> object:
        """Accept the mode in any letter case."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @property
    def is_production(self) -> bool:
        """Check if the live PayPal environment is configured."""
        return self.paypal_mode == Mode.PRODUCTION

    @property
    def api_base_url(self) -> str:
        """Base URL of the PayPal REST API for the configured mode."""
        return API_BASE_URLS[self.paypal_mode]

    @property
    def is_sqlite(self) -> bool:
        """SQLite engines do not accept pool sizing options."""
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
