"""Application settings using Pydantic for environment-based configuration."""
from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # MoneyFusion gateway
    moneyfusion_api_url: str = Field(
        default="https://api.moneyfusion.net/api/create-payment",
        description="Payment creation endpoint",
    )
    moneyfusion_check_url: Optional[str] = Field(
        default=None,
        description="Alternate base URL for status checks (token is appended)",
    )
    moneyfusion_return_url: Optional[str] = Field(
        default=None, description="Default URL the customer is redirected to after paying"
    )
    moneyfusion_webhook_url: Optional[str] = Field(
        default=None, description="Default URL the gateway posts notifications to"
    )

    # Gateway transport
    gateway_timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP timeout")
    gateway_verify_tls: bool = Field(
        default=True, description="Verify gateway TLS certificates (disable for local dev only)"
    )
    gateway_retry_enabled: bool = Field(default=True, description="Retry transient failures")
    gateway_retry_attempts: int = Field(default=3, ge=1, description="Max attempts per call")
    gateway_retry_delay_seconds: float = Field(
        default=0.1, ge=0, description="Delay between retry attempts (seconds)"
    )
    gateway_retry_backoff: str = Field(
        default="fixed", description="Retry backoff strategy (fixed/exponential)"
    )

    # Payments
    minimum_amount: Decimal = Field(default=Decimal("100"), description="Minimum payment amount")
    store_max_write_attempts: int = Field(
        default=5, ge=1, description="Optimistic write attempts before giving up"
    )
    pending_sweep_age_seconds: int = Field(
        default=600, description="Age after which pending payments are polled"
    )
    pending_sweep_interval_seconds: int = Field(
        default=300, description="Interval between pending sweeps"
    )
    pending_sweep_batch_size: int = Field(default=100, description="Payments per sweep")

    # Database Configuration
    database_url: str = Field(..., description="Async SQLAlchemy connection URL")
    database_pool_size: int = Field(default=20, description="Database connection pool size")
    database_max_overflow: int = Field(default=50, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Application Configuration
    app_name: str = Field(default="fusion-payments", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=4, description="Number of API workers")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="CORS allowed origins (comma-separated)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("moneyfusion_api_url", "moneyfusion_check_url")
    @classmethod
    def validate_gateway_url(cls, v: Optional[str]) -> Optional[str]:
        """Gateway URLs must be absolute http(s) URLs."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("Gateway URL must start with http:// or https://")
        return v

    @field_validator("gateway_retry_backoff")
    @classmethod
    def validate_retry_backoff(cls, v: str) -> str:
        """Validate retry backoff strategy."""
        if v.lower() not in ("fixed", "exponential"):
            raise ValueError("Retry backoff must be 'fixed' or 'exponential'")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @property
    def gateway_attempts(self) -> int:
        """Effective number of attempts per gateway call."""
        return self.gateway_retry_attempts if self.gateway_retry_enabled else 1


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
