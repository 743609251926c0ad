"""Configuration management for cadence."""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="data/cadence.db", description="Path to the SQLite database file")

    # Todoist Configuration
    todoist_api_token: str | None = Field(default=None, description="Todoist REST API token")
    todoist_base_url: str = Field(
        default="https://api.todoist.com/rest/v2", description="Todoist REST API base URL"
    )
    todoist_default_project_id: str | None = Field(
        default=None, description="Project used for routines that do not name their own"
    )
    todoist_webhook_secret: str | None = Field(
        default=None, description="Todoist app client secret used to verify webhook HMAC signatures"
    )

    # Scheduling Configuration
    default_timezone: str = Field(
        default="America/Los_Angeles", description="IANA timezone used to anchor time-of-day routines"
    )
    routine_generation_cron: str = Field(
        default="0 0 * * *", description="Cron expression for the daily routine generation run"
    )
    overdue_grace_days: int = Field(
        default=2, ge=0, description="Days past due before a pending routine task is marked missed"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Redis Configuration (optional)
    redis_url: str | None = Field(default=None, description="Redis connection URL (e.g., redis://localhost:6379)")

    @field_validator("default_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            msg = f"Unknown timezone: {value}"
            raise ValueError(msg) from e
        return value

    @field_validator("routine_generation_cron")
    @classmethod
    def validate_cron(cls, value: str) -> str:
        if not croniter.is_valid(value):
            msg = f"Invalid cron expression: {value}"
            raise ValueError(msg)
        return value

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # API Configuration
    API_TIMEOUT_SECONDS: int = 30
    EXTERNAL_CALL_TIMEOUT_SECONDS: int = 120  # Bounds one external call including its retries
    EXTERNAL_MAX_RETRIES: int = 3
    EXTERNAL_RETRY_DELAY_SECONDS: float = 1.0

    # Generation Windows
    GENERATION_WINDOW_DAYS: int = 7  # Never create a task readier than now + 7 days
    SECOND_INSTANCE_LOOKAHEAD_DAYS: int = 3
    BUSINESS_DAYS_AHEAD: int = 5
    TWICE_A_WEEK_PAIRS: int = 2
    UNDEFER_WINDOW_MS: int = 24 * 60 * 60 * 1000
    STATS_WINDOW_DAYS: int = 30

    # Minimum pending tasks inside the generation window before a routine needs generating
    GENERATION_FLOOR_DAILY: int = 3
    GENERATION_FLOOR_TWICE_A_WEEK: int = 2
    GENERATION_FLOOR_DEFAULT: int = 1

    # External Task Conventions
    PENDING_EXTERNAL_ID: str = "PENDING"
    ROUTINE_LABEL: str = "routine"

    # Webhook Configuration
    WEBHOOK_NONCE_TTL_SECONDS: int = 86400  # Todoist retries a delivery for up to a day

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100

    # Redis Configuration
    REDIS_MAX_CONNECTIONS: int = 10

    # Job Tracker Configuration
    TRACKER_DEAD_LETTER_QUEUE_MAXLEN: int = 100


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
