"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="3dlab-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    stripe_publishable_key: str = Field(default="", description="Stripe publishable key (for frontend)")
    stripe_webhook_tolerance: int = Field(default=300, description="Max webhook timestamp age in seconds")
    checkout_currency: str = Field(default="jpy", description="Currency for hosted checkout sessions")
    stripe_minimum_charge: int = Field(
        default=50,
        description="Smallest card charge Stripe accepts in the checkout currency (JPY 50)",
    )

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="3DLab <noreply@3dlab.jp>",
        description="From address for transactional emails",
    )
    notification_cc: str = Field(
        default="",
        description="Comma-separated staff addresses copied on confirmation emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Frontend application URL for checkout redirects",
    )

    # Admin
    admin_password: str = Field(default="", description="Shared password for admin endpoints")

    # School enrollment pricing (tax included, JPY)
    school_registration_fee: int = Field(default=22000, description="One-time school registration fee")
    school_free_monthly_fee: int = Field(default=17000, description="Monthly fee for the free creation class")
    school_basic_monthly_fee: int = Field(default=30000, description="Monthly fee for the basic practice class")

    @field_validator("checkout_currency")
    @classmethod
    def normalize_currency(cls, value: str) -> str:
        """Stripe expects lower-case ISO currency codes."""
        return value.strip().lower()

    @model_validator(mode="after")
    def check_school_fees(self) -> "Settings":
        """Fees are charged as-is, so a negative value is a configuration error."""
        fees = (self.school_registration_fee, self.school_free_monthly_fee, self.school_basic_monthly_fee)
        if any(fee < 0 for fee in fees):
            raise ValueError("school fees must not be negative")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def notification_cc_list(self) -> list[str]:
        """Parse staff CC addresses into a list."""
        return [addr.strip() for addr in self.notification_cc.split(",") if addr.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
