"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # DATABASE_URL wins when set (tests use sqlite://); otherwise the URL is
    # assembled from the POSTGRES_* parts.
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="calorie_tracker")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # Identity assertions are JWTs minted by the upstream auth provider.
    IDENTITY_JWT_SECRET: str = Field(
        default=...,  # Required - no default
        description="Shared secret used to verify identity tokens (32+ chars)."
    )
    IDENTITY_JWT_ALGORITHM: str = Field(default="HS256")
    IDENTITY_JWT_AUDIENCE: Optional[str] = Field(default=None)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 7)

    # Civil calendar used for "today", quotas and history windows.
    APP_TIMEZONE: str = Field(default="America/Denver")

    # Admin endpoints are disabled (503) unless a token is configured.
    ADMIN_DASH_TOKEN: Optional[str] = Field(default=None)

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None)
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(default=None)
    # Max age of a signed webhook timestamp; 0 disables the replay window.
    STRIPE_WEBHOOK_TOLERANCE_S: int = Field(default=300, ge=0)
    # Checkout sessions need a price id per interval; without one, checkout
    # falls back to the payment links in the plan settings.
    STRIPE_PRICE_MONTHLY_ID: Optional[str] = Field(default=None)
    STRIPE_PRICE_YEARLY_ID: Optional[str] = Field(default=None)
    STRIPE_CHECKOUT_SUCCESS_URL: Optional[str] = Field(default=None)
    STRIPE_CHECKOUT_CANCEL_URL: Optional[str] = Field(default=None)
    STRIPE_PORTAL_RETURN_URL: Optional[str] = Field(default=None)
    WEB_APP_BASE_URL: str = Field(default="http://localhost:8888")

    # Reconciliation alerting
    RECON_ALERT_WEBHOOK_URL: Optional[str] = Field(default=None)

    # OpenAI
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_MODEL: str = Field(default="gpt-4o-mini")

    # Data retention
    RETENTION_KEEP_DAYS: int = Field(default=90, ge=1, le=3650)
    RETENTION_MAX_DB_SIZE_GB: float = Field(default=0.49)
    RETENTION_TRIM_BATCH_SIZE: int = Field(default=1000, ge=1)
    RETENTION_TRIM_PASS_LIMIT: int = Field(default=20, ge=1)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # External API Configuration
    EXTERNAL_API_TIMEOUT: int = Field(default=10)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)  # 10% of transactions


# Global settings instance
settings = Settings()
