"""Application configuration via pydantic-settings."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Tripzeo"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "tripzeo"
    postgres_password: str = Field(default="tripzeo_secret")
    postgres_db: str = "tripzeo"
    db_pool_size: int = 20
    db_max_overflow: int = 10

    @computed_field
    @property
    def database_url(self) -> str:
        """Async PostgreSQL connection URL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @computed_field
    @property
    def sync_database_url(self) -> str:
        """Sync PostgreSQL connection URL for Alembic."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis (Celery broker and result backend)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # JWT issued by the identity provider
    jwt_secret_key: str = Field(default="your-super-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"

    # Scheduler trigger (Authorization: Bearer <cron_secret>)
    cron_secret: str = Field(default="change-me-cron-secret")

    # Payment Gateways
    payment_gateway: Literal["stripe", "manual"] = "manual"
    gateway_timeout_seconds: float = 15.0
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    checkout_success_url: str = "http://localhost:3000/account/orders?payment=success"
    checkout_cancel_url: str = "http://localhost:3000/checkout/{booking_id}?error=cancelled"

    # Email (SendGrid)
    sendgrid_api_key: Optional[str] = None
    email_from_address: str = "noreply@tripzeo.com"
    email_from_name: str = "Tripzeo"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    # Default rate table, overridden by platform_settings rows
    default_currency: str = "USD"
    commission_percent: Decimal = Decimal("15.00")
    service_fee_percent: Decimal = Decimal("5.00")
    partner_commission_percent: Decimal = Decimal("10.00")
    partner_payout_threshold: int = 15000  # 150.00 in cents

    # Completion sweep
    sweep_concurrency: int = 8
    sweep_interval_minutes: int = 15


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
