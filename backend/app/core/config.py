"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
All configuration is loaded from environment variables with sensible defaults.
"""

from typing import List, Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Settings are validated using Pydantic and cached for performance.
    See .env.example for all available configuration options.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    APP_NAME: str = "Report Builder"
    APP_ENV: str | None = None
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # -------------------------------------------------------------------------
    # API
    # -------------------------------------------------------------------------
    API_PREFIX: str = "/api/v1"
    CORS_ORIGINS: List[str] = Field(default_factory=list)

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "reports"
    POSTGRES_PASSWORD: str = "reports"
    POSTGRES_DB: str = "reports"

    # Optional full DSN overrides (used by some deployments and tooling)
    POSTGRES_URL: Optional[str] = None
    POSTGRES_URL_SYNC: Optional[str] = None

    # Test-only DB overrides (used by pytest fixtures)
    TEST_DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL_SYNC: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        """Build the async database URL."""
        if self.APP_ENV == "test" and self.TEST_DATABASE_URL:
            return self.TEST_DATABASE_URL
        if self.POSTGRES_URL:
            return self.POSTGRES_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def DATABASE_URL_SYNC(self) -> str:
        """Build the sync database URL (for Alembic)."""
        if self.APP_ENV == "test" and self.TEST_DATABASE_URL_SYNC:
            return self.TEST_DATABASE_URL_SYNC
        if self.POSTGRES_URL_SYNC:
            return self.POSTGRES_URL_SYNC
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # -------------------------------------------------------------------------
    # Redis
    # -------------------------------------------------------------------------
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str | None = None
    REDIS_DB: int = 0

    @property
    def REDIS_URL(self) -> str:
        """Construct Redis URL."""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # -------------------------------------------------------------------------
    # Celery
    # -------------------------------------------------------------------------
    CELERY_BROKER_URL: str | None = None
    CELERY_RESULT_BACKEND: str | None = None

    # -------------------------------------------------------------------------
    # Report queue policy
    # -------------------------------------------------------------------------
    REPORT_QUEUE_NAME: str = "q.reports"
    REPORT_QUEUE_MAX_ATTEMPTS: int = Field(3, ge=1)
    # "exponential" | "fixed"
    REPORT_QUEUE_BACKOFF: str = "exponential"
    REPORT_QUEUE_BACKOFF_BASE_SECONDS: float = Field(5.0, ge=0)
    REPORT_QUEUE_RETAIN_COMPLETED: int = Field(100, ge=0)
    REPORT_QUEUE_RETAIN_FAILED: int = Field(50, ge=0)
    # Consumers per process for the in-process queue; Celery uses worker_concurrency.
    REPORT_WORKER_CONCURRENCY: int = Field(4, ge=1)

    # -------------------------------------------------------------------------
    # Report lifecycle
    # -------------------------------------------------------------------------
    REPORT_JOB_TTL_DAYS: int = 7
    REPORT_STALE_AFTER_MINUTES: int = 60
    REPORT_TERMINAL_RETENTION_DAYS: int = 30
    REPORT_FAILED_LIST_LIMIT: int = 20
    REPORT_SWEEP_BATCH_SIZE: int = 500

    # -------------------------------------------------------------------------
    # Report storage
    # -------------------------------------------------------------------------
    # "local" | "s3"
    REPORT_STORAGE_BACKEND: str = "local"
    # Directory for generated report files. Defaults to exports/reports.
    REPORT_STORAGE_DIR: str | None = None
    REPORT_S3_BUCKET: str | None = None
    REPORT_S3_REGION: str | None = None
    REPORT_S3_ENDPOINT_URL: str | None = None
    # Public base used to build file references (e.g. a CDN in front of the bucket).
    REPORT_S3_PUBLIC_URL: str | None = None
    AWS_ACCESS_KEY_ID: str | None = None
    AWS_SECRET_ACCESS_KEY: str | None = None

    # -------------------------------------------------------------------------
    # Report data source
    # -------------------------------------------------------------------------
    REPORT_DATA_SOURCE_URL: str | None = None
    REPORT_DATA_SOURCE_TOKEN: str | None = None
    REPORT_DATA_SOURCE_TIMEOUT_SECONDS: float = 30.0

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------
    # delivery mode: "log" (no-op, logs only) | "webhook" (POST to REPORT_NOTIFY_WEBHOOK_URL)
    REPORT_NOTIFY_MODE: str = "log"
    REPORT_NOTIFY_WEBHOOK_URL: str | None = None
    REPORT_NOTIFY_TIMEOUT_SECONDS: float = 5.0

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once and reused.

    Returns:
        Settings: Validated settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
