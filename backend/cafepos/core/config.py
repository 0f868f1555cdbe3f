"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. Business constants that operators
tune per venue (tax rate, packaging fee, reservation timings) live here too.
"""

from decimal import Decimal
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database
    database_url: str = "sqlite:///./cafepos.db"
    db_echo: bool = False

    # Security
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # one 12-hour shift

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True

    # Venue-local timezone used for bill numbers and "today" boundaries
    timezone: str = "Asia/Kolkata"

    # ==========================================================================
    # Billing
    # ==========================================================================
    tax_rate: Decimal = Decimal("0.05")
    default_packaging_fee: Decimal = Decimal("10")
    default_delivery_fee: Decimal = Decimal("0")
    bill_number_max_attempts: int = 5

    # ==========================================================================
    # Stock
    # ==========================================================================
    low_stock_threshold: int = 10  # inventory counters below this are flagged
    strict_recipe_stock: bool = False  # refuse recipe deductions that go negative
    restore_stock_on_cancel: bool = False

    # Delivery/takeaway line prices come from the caller unless disabled
    trust_client_prices: bool = True

    # ==========================================================================
    # Reservations
    # ==========================================================================
    reservation_scheduler_enabled: bool = True
    reservation_check_interval_seconds: int = 60
    reservation_expiring_soon_minutes: int = 15

    # ==========================================================================
    # Delivery platform webhooks (HMAC-SHA256 over the raw body when set)
    # ==========================================================================
    zomato_webhook_secret: Optional[str] = None
    swiggy_webhook_secret: Optional[str] = None

    @field_validator("tax_rate")
    @classmethod
    def validate_tax_rate(cls, v: Decimal) -> Decimal:
        if v < 0 or v >= 1:
            raise ValueError("TAX_RATE must be a fraction between 0 and 1")
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if v == "change-me-in-production" or len(v) < 32:
            import warnings
            warnings.warn(
                "SECRET_KEY is the default or shorter than 32 characters. "
                "Set a secure SECRET_KEY environment variable.",
                UserWarning,
                stacklevel=2,
            )
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production safety."""
        if not self.debug:
            if self.secret_key == "change-me-in-production":
                raise ValueError(
                    "FATAL: Cannot start in production mode with default SECRET_KEY. "
                    "Set a secure SECRET_KEY environment variable (minimum 32 characters)."
                )
            if len(self.secret_key) < 32:
                raise ValueError(
                    f"FATAL: SECRET_KEY must be at least 32 characters in production mode "
                    f"(current length: {len(self.secret_key)})."
                )
        return self

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
