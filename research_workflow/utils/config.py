"""Type-safe environment configuration using Pydantic Settings."""

from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.

    Every field has a default so the engine can be embedded as a library
    without any environment set up. Secrets are masked in string
    representations.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields in .env
        env_ignore_empty=True,
    )

    APP_NAME: str = Field(
        default="research-workflow",
        description="Application name"
    )

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    LOG_FORMAT: Literal["standard", "json"] = Field(
        default="standard",
        description="Console log layout"
    )

    AUDIT_LOG_FILE: str | None = Field(
        default=None,
        description="File receiving the audit trail as JSON lines"
    )

    DEBUG: bool = Field(
        default=False,
        description="Debug mode flag"
    )

    API_TIMEOUT: int = Field(
        default=30,
        description="Timeout for market data HTTP requests in seconds",
        gt=0
    )

    # Database configuration
    DATABASE_URL: SecretStr | None = Field(
        default=None,
        description="SQLAlchemy database URL for the state store"
    )

    DB_POOL_SIZE: int = Field(
        default=5,
        description="Database connection pool size",
        gt=0
    )

    DB_MAX_OVERFLOW: int = Field(
        default=10,
        description="Maximum overflow connections in pool",
        ge=0
    )

    DB_POOL_TIMEOUT: int = Field(
        default=30,
        description="Database pool timeout in seconds",
        gt=0
    )

    DB_MAX_RETRIES: int = Field(
        default=3,
        description="Maximum number of retry attempts for database operations",
        ge=0
    )

    DB_RETRY_DELAY: float = Field(
        default=1.0,
        description="Initial delay between retries in seconds",
        gt=0
    )

    # Workflow engine
    STEP_TIMEOUT_SECONDS: float | None = Field(
        default=60.0,
        description="Upper bound for a single step execution (None disables)",
        gt=0
    )

    # Market data providers
    FMP_API_KEY: SecretStr | None = Field(
        default=None,
        description="Financial Modeling Prep API key"
    )

    FRED_API_KEY: SecretStr | None = Field(
        default=None,
        description="Federal Reserve Economic Data API key"
    )

    MARKET_DATA_MAX_RETRIES: int = Field(
        default=2,
        description="Retry attempts for transient market data failures",
        ge=0
    )

    MARKET_DATA_CACHE_TTL: float = Field(
        default=900.0,
        description="Seconds a cached market data answer is served without refetching",
        ge=0
    )

    MARKET_DATA_OFFLINE_FALLBACK: bool = Field(
        default=False,
        description="Fall back to the static offline dataset when live data fails"
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {valid_levels}, got '{v}'"
            )
        return v_upper

    def get_database_url(self) -> str | None:
        """Get the database URL value if set."""
        return self.DATABASE_URL.get_secret_value() if self.DATABASE_URL else None

    def get_fmp_api_key(self) -> str | None:
        """Get the Financial Modeling Prep API key if set."""
        return self.FMP_API_KEY.get_secret_value() if self.FMP_API_KEY else None

    def get_fred_api_key(self) -> str | None:
        """Get the FRED API key if set."""
        return self.FRED_API_KEY.get_secret_value() if self.FRED_API_KEY else None


# Singleton instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Loads settings from environment variables and .env file on first call.
    Subsequent calls return the cached instance.

    Returns:
        Settings: The application settings instance

    Raises:
        ValidationError: If environment variables are present but invalid
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset the settings singleton. Useful for testing."""
    global _settings
    _settings = None
