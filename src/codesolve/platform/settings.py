"""Platform settings loaded from the environment and `.env` with pydantic-settings."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Application settings.

    Nested blocks are set with a double underscore, e.g. BILLING__CREDIT_EXPIRY_DAYS=180.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ============================================================
    # Core Application Settings
    # ============================================================

    app_name: str = Field("codesolve-platform", description="Application name")
    app_version: str = Field("1.0.0", description="Application version")
    environment: Environment = Field(Environment.DEVELOPMENT, description="Deployment environment")
    testing: bool = Field(False, description="Testing mode")

    # Server
    host: str = Field("0.0.0.0", description="Server bind address")
    port: int = Field(8000, description="Server port")

    # ============================================================
    # Database Configuration
    # ============================================================

    class DatabaseSettings(BaseModel):
        """Database configuration."""

        url: str | None = Field(None, description="Full async database URL")
        host: str = Field("localhost", description="Database host")
        port: int = Field(5432, description="Database port")
        database: str = Field("codesolve", description="Database name")
        username: str = Field("codesolve", description="Database username")
        password: str = Field("", description="Database password")

        # Options
        echo: bool = Field(False, description="Echo SQL statements")

        @property
        def sqlalchemy_url(self) -> str:
            """Build SQLAlchemy async database URL."""
            if self.url:
                return self.url
            if not self.password:
                return "sqlite+aiosqlite:///./codesolve_dev.sqlite"
            return f"postgresql+asyncpg://{self.username}:{self.password}@{self.host}:{self.port}/{self.database}"

    database: DatabaseSettings = DatabaseSettings()  # type: ignore[call-arg]

    # ============================================================
    # Observability
    # ============================================================

    class ObservabilitySettings(BaseModel):
        """Logging configuration."""

        log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
        log_format: str = Field("json", description="Log format (json or text)")
        bind_context: bool = Field(
            True, description="Merge context-bound fields (tenant_id, workflow_id) into log records"
        )

    observability: ObservabilitySettings = ObservabilitySettings()  # type: ignore[call-arg]

    # ============================================================
    # Billing Configuration
    # ============================================================

    class BillingSettings(BaseModel):
        """Entitlement and plan-change billing configuration."""

        # Currency
        default_currency: str = Field("BRL", description="Currency used for plan prices")
        default_locale: str = Field("pt_BR", description="Locale for display formatting")

        # Credits
        credit_expiry_days: int = Field(365, description="Days before earned credit expires")

        # Plan changes
        allow_plan_changes: bool = Field(True, description="Allow subscription plan changes")
        min_days_for_downgrade: int = Field(
            0, description="Days a subscription must exist before a downgrade is allowed"
        )
        idle_workflow_ttl_minutes: int = Field(
            60, description="Minutes before an unclaimed plan change workflow is forgotten"
        )

        # Payment gateway
        payment_gateway_url: str = Field(
            "http://localhost:3001/api", description="Base URL of the billing backend"
        )
        payment_gateway_timeout: float = Field(30.0, description="Gateway timeout in seconds")

        # Notifications
        send_plan_change_notifications: bool = Field(
            True, description="Send plan change and credit notifications"
        )

    billing: BillingSettings = BillingSettings()  # type: ignore[call-arg]

    # ============================================================
    # Validation & Helpers
    # ============================================================

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: Any) -> Any:
        """Validate environment."""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    @property
    def is_production(self) -> bool:
        """Disables the interactive API docs."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.testing or self.environment == Environment.TEST


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Process-wide settings, built on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None


# Convenience export
settings = get_settings()
