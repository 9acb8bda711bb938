"""Application configuration from environment variables."""

from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite:///./rent.db",
        description="SQLAlchemy database URL (sync form; async driver is derived)",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Log file path")

    # Invoice generation
    directory_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for reading occupied units before giving up",
    )
    default_due_days: int = Field(
        default=7,
        ge=1,
        le=31,
        description="Due date offset (days after period end) for manual generation",
    )
    late_fee_daily_rate: Decimal | None = Field(
        default=None,
        ge=0,
        description="If set, the daily overdue sweep applies the accrued late fee",
    )
    locale: str = Field(default="en_US", description="Babel locale for money formatting")

    # Scheduler
    scheduler_enabled: bool = Field(default=True, description="Start the daily scheduler with the API")
    scheduler_timezone: str = Field(default="Indian/Maldives", description="Scheduler wall-clock zone")
    scheduler_run_hour: int = Field(default=9, ge=0, le=23, description="Hour of the daily run")

    # API
    api_title: str = Field(default="Rent Invoice API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")


# Global settings instance
settings = Settings()
