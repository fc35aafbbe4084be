"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./moodseed.db", alias="DATABASE_URL")
    db_pool_size: int = Field(default=20, alias="DB_POOL_SIZE")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS Configuration
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    # Replicate text + image generation
    replicate_api_token: str = Field(default="", alias="REPLICATE_API_TOKEN")
    replicate_text_model: str = Field(
        default="meta/meta-llama-3-70b-instruct", alias="REPLICATE_TEXT_MODEL"
    )
    replicate_image_model: str = Field(
        default="black-forest-labs/flux-schnell", alias="REPLICATE_IMAGE_MODEL"
    )

    # Credit metering
    credit_value_usd: float = Field(default=0.01, gt=0, alias="CREDIT_VALUE_USD")

    # Provider backpressure (token bucket shared by all provider calls of one execution)
    provider_rate_per_second: float = Field(default=2.0, ge=0, alias="PROVIDER_RATE_PER_SECOND")
    provider_burst: int = Field(default=4, ge=1, alias="PROVIDER_BURST")
    image_concurrency: int = Field(default=8, ge=1, alias="IMAGE_CONCURRENCY")

    # Progress streaming
    stream_queue_size: int = Field(default=256, ge=1, alias="STREAM_QUEUE_SIZE")

    # Reconciliation of deductions left behind by a dead process
    orphan_grace_seconds: int = Field(default=300, ge=0, alias="ORPHAN_GRACE_SECONDS")
    orphan_sweep_interval_seconds: int = Field(
        default=60, ge=1, alias="ORPHAN_SWEEP_INTERVAL_SECONDS"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        Fails fast with a clear error message when a production deployment is
        missing the provider credentials. Test and development environments
        run against fake providers and skip the check.
        """
        if self.app_env in ("test", "testing", "development"):
            return self

        missing = []

        if not self.replicate_api_token:
            missing.append(
                "REPLICATE_API_TOKEN: Get your API token from https://replicate.com/account/api-tokens"
            )

        if self.database_url.startswith("sqlite"):
            missing.append("DATABASE_URL: Production requires a PostgreSQL connection URL")

        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe application cannot start without these variables."
            error_msg += "\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.app_env == "production":
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
