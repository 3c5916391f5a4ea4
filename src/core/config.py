"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Sync client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Todue Sync")
    app_env: str = Field(default="development")
    debug: bool = Field(default=False)

    # Todo Service
    api_base_url: str = Field(
        default="http://localhost:8080/api",
        description="Base URL of the Todo Service REST API",
    )
    api_token: str = Field(
        default="",
        description="Bearer token attached to every Todo Service request",
    )
    request_timeout_seconds: float = Field(default=10.0)

    # Push channel
    push_url: str = Field(
        default="http://localhost:8080/api/updates/stream",
        description="Per-user notification stream endpoint",
    )
    push_refetch_delay_seconds: float = Field(
        default=0.3,
        description="Delay before a push-triggered re-fetch so the server's write commits first",
    )
    push_reconnect_delay_seconds: float = Field(default=3.0)
    push_max_reconnect_attempts: int = Field(default=5)

    # View
    default_view_days: int = Field(
        default=1,
        description="Number of visible days centred on the selected date (1, 3, 5 or 7)",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def auth_headers(self) -> dict[str, str]:
        """Authorization header for the configured token, if any."""
        token = self.api_token.strip()
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
