"""
Configuration management for the calendar sync service.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/calendar_sync.db",
        description="Database connection URL"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    api_reload: bool = Field(
        default=True,
        description="Enable auto-reload in development"
    )
    app_base_url: str = Field(
        default="http://localhost:3000",
        description="Public URL of the scheduling app (used for event deep links)"
    )

    # Timezone Configuration
    timezone: str = Field(
        default="Europe/Warsaw",
        description="Deployment timezone for timed events (IANA timezone name)"
    )

    # Google OAuth Configuration (for user calendars)
    google_oauth_client_id: str = Field(
        default="",
        description="Google OAuth 2.0 client ID"
    )
    google_oauth_client_secret: str = Field(
        default="",
        description="Google OAuth 2.0 client secret"
    )
    google_oauth_redirect_uri: str = Field(
        default="http://localhost:8000/integrations/google-calendar/callback",
        description="OAuth redirect URI (must match Google Cloud Console)"
    )
    oauth_state_ttl_seconds: int = Field(
        default=600,
        description="Lifetime of the OAuth state token"
    )

    # Credential storage
    token_encryption_key: str = Field(
        default="",
        description="Fernet key used to encrypt OAuth tokens at rest"
    )
    token_refresh_skew_seconds: int = Field(
        default=300,
        description="Refresh access tokens this many seconds before they expire"
    )

    # Provider calls
    provider_timeout_seconds: float = Field(
        default=10.0,
        description="Socket timeout for Google API calls"
    )
    provider_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per provider call for transient errors"
    )
    provider_retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Exponential backoff multiplier between retries"
    )
    sync_max_concurrency: int = Field(
        default=4,
        ge=1,
        description="Connections processed in parallel for one event mutation"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_postgresql(self) -> bool:
        """Check if PostgreSQL is the configured database."""
        return "postgresql" in self.database_url.lower()

    @property
    def uses_google_oauth(self) -> bool:
        """Check if Google OAuth is configured."""
        return bool(self.google_oauth_client_id and self.google_oauth_client_secret)

    def validate_production_config(self) -> None:
        """
        Validate configuration for production environment.

        Raises:
            ValueError: If required production settings are missing or invalid
        """
        if not self.is_production:
            return

        errors = []

        if not self.uses_postgresql:
            errors.append(
                "Production requires PostgreSQL. "
                "Set DATABASE_URL to a PostgreSQL connection string."
            )

        if not self.uses_google_oauth:
            errors.append(
                "GOOGLE_OAUTH_CLIENT_ID and GOOGLE_OAUTH_CLIENT_SECRET are required in production."
            )

        if not self.token_encryption_key:
            errors.append("TOKEN_ENCRYPTION_KEY is required in production.")

        if errors:
            raise ValueError("Production configuration errors:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Use this function throughout the application to access settings.

    Example:
        >>> from calendar_sync.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.token_refresh_skew_seconds)
    """
    return Settings()
