"""Application configuration from environment variables."""

from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "QuickCourt"
    debug: bool = True
    secret_key: str = "dev-secret-change-in-production"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    timezone: str = "Asia/Kolkata"

    # Database
    database_url: str = "postgresql+asyncpg://quickcourt:quickcourt@db:5432/quickcourt"
    database_echo: bool = False

    # Redis
    redis_url: str = "redis://redis:6379/0"

    # Auth
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 30
    jwt_algorithm: str = "HS256"

    # Email / SMTP
    smtp_host: str = "localhost"
    smtp_port: int = 1025
    smtp_from: str = "noreply@quickcourt.in"
    frontend_url: str = "http://localhost:5173"

    # Stripe (test mode)
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_currency: str = "inr"
    stripe_timeout_seconds: float = 10.0

    # Booking lifecycle
    payment_intent_ttl_minutes: int = 15
    max_payment_attempts: int = 3
    stale_retry_limit: int = 3
    hold_sweep_interval_seconds: int = 60

    # Pricing policy
    pricing_peak_start: str = "18:00"
    pricing_peak_end: str = "22:00"
    pricing_peak_multiplier: Decimal = Decimal("1.25")
    pricing_weekend_multiplier: Decimal = Decimal("1.00")

    model_config = {"env_prefix": "QC_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
