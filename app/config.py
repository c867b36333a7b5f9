"""Application configuration via pydantic-settings."""

from __future__ import annotations

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
    app_name: str = "Booking Holds"
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
    postgres_user: str = "booking"
    postgres_password: str = Field(default="booking_secret")
    postgres_db: str = "booking_holds"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    database_dsn: Optional[str] = None  # e.g. sqlite+aiosqlite:///./dev.db

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_dsn:
            return self.database_dsn
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
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

    # JWT Authentication
    jwt_secret_key: str = Field(default="your-super-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    # Hold policy (hours)
    hold_min_duration_hours: int = 1
    hold_max_duration_hours: int = 168  # one week
    hold_default_duration_hours: int = 24

    # Expiry sweeper
    hold_sweeper_enabled: bool = True
    hold_sweep_interval_seconds: int = 300
    hold_sweep_batch_size: int = 100

    # Outbound hold event webhook (optional)
    hold_events_webhook_url: Optional[str] = None
    hold_events_webhook_timeout: float = 5.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
