"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
    )

    # ===================
    # DIRECTORY SERVICE
    # ===================
    directory_api_url: str = Field(
        default="https://graph.microsoft.com/v1.0",
        description="Base URL of the user directory REST API"
    )
    directory_api_token: Optional[str] = Field(
        None,
        description="Bearer token for the directory API"
    )
    directory_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=120,
        description="Per-request timeout for directory lookups"
    )
    corp_email_domains: str = Field(
        default="bgcengineering.ca",
        description="Comma-separated corporate email domains used for account lookups"
    )

    # ===================
    # RESOLVER RETRY
    # ===================
    resolver_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for a failed resolver batch call"
    )
    resolver_backoff_base_seconds: float = Field(
        default=1.0,
        ge=0,
        description="First retry delay; doubles on every attempt"
    )
    resolver_backoff_cap_seconds: float = Field(
        default=8.0,
        ge=0,
        description="Maximum delay between resolver retries"
    )

    # ===================
    # IMPORT EXECUTION
    # ===================
    import_batch_size: int = Field(
        default=25,
        ge=1,
        le=500,
        description="Rows processed per batch by the import job"
    )
    import_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Client-side wall-clock ceiling for waiting on an import"
    )
    import_api_url: str = Field(
        default="http://localhost:8000",
        description="Base URL used by the remote import client"
    )

    # ===================
    # PROGRESS CHANNEL
    # ===================
    progress_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        le=30,
        description="Keep-alive interval for progress streams"
    )
    progress_max_reconnects: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Reconnect attempts for a progress stream before completion"
    )
    session_purge_seconds: float = Field(
        default=60.0,
        ge=0,
        description="How long a finished session is kept for late subscribers"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase credentials are present."""
        return bool(self.supabase_url and self.supabase_key)

    @property
    def corporate_domains(self) -> list[str]:
        """Corporate domains as a clean list."""
        return [d.strip() for d in self.corp_email_domains.split(",") if d.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
