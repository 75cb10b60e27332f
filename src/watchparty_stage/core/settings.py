"""Application settings and configuration.

This module defines all configuration options for the Watchparty Stage service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Watchparty Stage", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./watchparty.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Closure scheduling
    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")
    scheduler_horizon_hours: float = Field(default=24.0, alias="SCHEDULER_HORIZON_HOURS")
    # Hour of day (UTC) the daily sweep runs at.
    scheduler_sweep_hour_utc: int = Field(
        default=0,
        ge=0,
        le=23,
        alias="SCHEDULER_SWEEP_HOUR_UTC",
    )

    # Vote caps (per user, per direction, per session)
    vote_cap_enabled: bool = Field(default=True, alias="VOTE_CAP_ENABLED")
    vote_cap_ratio_up: float = Field(default=1 / 3, gt=0, le=1, alias="VOTE_CAP_RATIO_UP")
    vote_cap_ratio_down: float = Field(default=1 / 5, gt=0, le=1, alias="VOTE_CAP_RATIO_DOWN")
    vote_cap_minimum: int = Field(default=1, ge=0, alias="VOTE_CAP_MINIMUM")

    # Remote dashboard notifications
    dashboard_enabled: bool = Field(default=False, alias="DASHBOARD_ENABLED")
    dashboard_base_url: str | None = Field(default=None, alias="DASHBOARD_BASE_URL")
    dashboard_events_path: str = Field(default="/events", alias="DASHBOARD_EVENTS_PATH")
    dashboard_instance_id: str = Field(default="stage-local", alias="DASHBOARD_INSTANCE_ID")
    dashboard_shared_secret: str | None = Field(default=None, alias="DASHBOARD_SHARED_SECRET")
    dashboard_audience: str = Field(default="watchparty-dashboard", alias="DASHBOARD_JWT_AUD")
    dashboard_token_ttl_seconds: int = Field(
        default=300,
        alias="DASHBOARD_TOKEN_TTL_SECONDS",
    )
    dashboard_http_timeout_seconds: float = Field(
        default=5.0,
        alias="DASHBOARD_HTTP_TIMEOUT_SECONDS",
    )

    # External calendar-style events (chat platform scheduled events)
    external_events_base_url: str | None = Field(
        default=None,
        alias="EXTERNAL_EVENTS_BASE_URL",
    )
    external_events_token: str | None = Field(default=None, alias="EXTERNAL_EVENTS_TOKEN")
    external_events_timeout_seconds: float = Field(
        default=10.0,
        alias="EXTERNAL_EVENTS_TIMEOUT_SECONDS",
    )

    # CORS configuration for dashboard/web access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic."""
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def vote_cap_defaults(self) -> dict[str, float]:
        """Return the vote cap parameters as a convenience dictionary."""
        return {
            "ratio_up": self.vote_cap_ratio_up,
            "ratio_down": self.vote_cap_ratio_down,
            "minimum": float(self.vote_cap_minimum),
        }


settings = Settings()
