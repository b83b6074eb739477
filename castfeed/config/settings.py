"""
CastFeed Configuration System
============================

Configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.
"""

import os
from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..recovery.retry_logic import RetryStrategy
from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/castfeed.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/castfeed.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class FetchSettings(BaseModel):
    """Feed download configuration."""
    request_timeout: int = Field(default=30, ge=1, le=300, description="Request timeout in seconds")
    max_feed_bytes: int = Field(default=20 * 1024 * 1024, ge=1024, description="Largest feed body accepted")
    user_agent: str = Field(default="CastFeed/1.0 (+https://github.com/castfeed/castfeed)", description="User-Agent header")


class ActivitySettings(BaseModel):
    """Activity feed service configuration."""
    base_url: str = Field(default="https://api.stream-io-api.com/api/v1.0", description="Activity feed API base URL")
    api_key: Optional[str] = Field(default=None, description="Activity feed API key")
    api_token: Optional[str] = Field(default=None, description="Activity feed bearer token")
    feed_group: str = Field(default="podcast", description="Feed group that receives episode activities")
    batch_size: int = Field(default=100, ge=1, le=100, description="Activities per write call")
    request_timeout: int = Field(default=15, ge=1, le=120, description="Request timeout in seconds")
    circuit_failure_threshold: int = Field(default=5, ge=1, description="Failures before the circuit opens")
    circuit_recovery_timeout: float = Field(default=30.0, ge=0.0, description="Seconds before a half-open trial call")


class QueueSettings(BaseModel):
    """Job queue configuration."""
    podcast_queue_name: str = Field(default="podcast", description="Queue that carries ingestion jobs")
    enrichment_queue_name: str = Field(default="og", description="Queue that receives enrichment jobs")
    attempts: int = Field(default=3, ge=1, le=20, description="Delivery attempts per ingestion job")
    backoff_strategy: RetryStrategy = Field(default=RetryStrategy.EXPONENTIAL_BACKOFF, description="Delay strategy between attempts")
    backoff_delay: float = Field(default=5.0, ge=0.0, description="Base delay between attempts in seconds")
    max_backoff_delay: float = Field(default=300.0, ge=0.0, description="Upper bound for retry delay")
    job_timeout: Optional[float] = Field(default=600.0, ge=1.0, description="Seconds before an attempt is cancelled")
    concurrency: int = Field(default=3, ge=1, le=50, description="Jobs processed concurrently")
    enrichment_concurrency: int = Field(default=2, ge=1, le=50, description="Enrichment jobs processed concurrently")


class SchedulerSettings(BaseModel):
    """Recurring feed scheduling configuration."""
    scrape_interval_minutes: int = Field(default=15, ge=1, description="Minimum minutes between scrapes of one podcast")
    poll_interval_seconds: int = Field(default=60, ge=1, description="Seconds between scheduler passes")
    max_jobs_per_pass: int = Field(default=500, ge=1, description="Podcasts enqueued per scheduler pass")

    @field_validator('scrape_interval_minutes')
    @classmethod
    def validate_interval(cls, v):
        """Keep at least one minute between scrapes."""
        if v < 1:
            raise ValueError("scrape_interval_minutes must be at least 1")
        return v


class CastFeedSettings(BaseSettings):
    """Main application settings."""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    activity: ActivitySettings = Field(default_factory=ActivitySettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    app_name: str = Field(default="CastFeed", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "CASTFEED_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        if not self.activity.base_url.startswith(("http://", "https://")):
            errors.append(f"Activity base URL must be http(s): {self.activity.base_url}")

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def is_production_mode(self) -> bool:
        """Check if running in production mode."""
        return not self.debug and os.getenv("ENV", "development").lower() == "production"

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> CastFeedSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = CastFeedSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


_settings: Optional[CastFeedSettings] = None


def get_settings(reload: bool = False) -> CastFeedSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
