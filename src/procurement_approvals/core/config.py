"""Application configuration management using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="procurement-approvals", description="Application name")
    environment: Literal["development", "testing", "staging", "production"] = Field(
        default="development", description="Runtime environment"
    )
    debug: bool = Field(default=False, description="Debug mode flag")
    secret_key: str = Field(
        default="dev-secret-key-change-in-production",
        description="Secret key for signing",
    )

    # API
    api_v1_prefix: str = Field(default="/api/v1", description="API v1 prefix")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="CORS allowed origins",
    )
    frontend_url: str = Field(
        default="http://localhost:5173", description="Base URL used in notification links"
    )

    # Database
    db_host: str = Field(default="localhost", description="PostgreSQL host")
    db_port: int = Field(default=5432, description="PostgreSQL port")
    db_user: str = Field(default="postgres", description="PostgreSQL user")
    db_password: str = Field(default="postgres", description="PostgreSQL password")
    db_name: str = Field(default="procurement", description="PostgreSQL database name")

    # Redis
    redis_host: str = Field(default="localhost", description="Redis host")
    redis_port: int = Field(default=6379, description="Redis port")
    redis_db: int = Field(default=0, description="Redis database number")
    redis_password: str | None = Field(default=None, description="Redis password")

    # JWT Authentication
    access_token_expire_minutes: int = Field(
        default=30, description="Access token expiration in minutes"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="json", description="Log output format"
    )

    # Notifications
    notification_webhook_url: str | None = Field(
        default=None, description="Generic webhook receiving approval notifications"
    )
    notification_webhook_api_key: str | None = Field(
        default=None, description="Bearer token for the notification webhook"
    )
    slack_webhook_url: str | None = Field(
        default=None, description="Slack incoming webhook URL"
    )
    slack_mention_on_critical: bool = Field(
        default=True, description="Mention @channel on critical approvals"
    )

    # Approval engine
    approval_max_commit_attempts: int = Field(
        default=3, ge=1, le=10, description="Attempts before a conflict is surfaced"
    )
    approval_store_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Timeout for transactional reads/writes"
    )
    approval_notification_timeout_seconds: float = Field(
        default=15.0, gt=0, description="Timeout for a single notification dispatch"
    )
    approval_audit_mandatory: bool = Field(
        default=False, description="Block on audit submission and surface failures"
    )
    approval_lazy_expiry: bool = Field(
        default=True, description="Expire overdue requests on read"
    )
    approval_cross_department_delegation: list[str] = Field(
        default=["document_approval", "rfq_creation"],
        description="Approval types allowing delegation across departments",
    )
    approval_sweep_interval_seconds: float = Field(
        default=300.0, gt=0, description="Period of the expiry sweep task"
    )
    organization_chart_path: str | None = Field(
        default=None, description="JSON file describing departments and approvers"
    )

    @computed_field
    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @computed_field
    @property
    def database_url_sync(self) -> str:
        """Construct synchronous database URL for migrations."""
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @computed_field
    @property
    def redis_url(self) -> str:
        """Construct Redis URL from components."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
