"""Application configuration using Pydantic BaseSettings.

Loads settings from environment variables with sensible defaults for
local development. Production values must be set via environment or a
.env file.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Upstream marks API
    marks_api_base_url: str = Field(
        default="http://127.0.0.1:8000/api",
        description="Base URL of the marks API that owns batches and scores",
    )
    request_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout applied to every call made to the marks API",
    )
    default_page_size: int = Field(
        default=50,
        gt=0,
        description="Page size requested when a batch is opened without one",
    )

    # Edit sessions
    undo_limit: int = Field(
        default=30,
        gt=0,
        description="Maximum number of undo snapshots kept per session",
    )
    principal_role: str = Field(
        default="principal",
        description="Role allowed to edit batches outside the edit window",
    )
    session_idle_timeout_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="Seconds of inactivity after which an open edit session is discarded",
    )

    # HTTP surface
    cors_allow_origins: list[str] = Field(
        default=["*"],
        description="Origins allowed to call the API from a browser (JSON list in env)",
    )

    # Runtime
    log_level: str = Field(default="INFO", description="Python logging level")
    debug: bool = Field(default=False, description="Enable FastAPI debug mode")
    app_version: str = Field(default="1.0.0", description="Application version string")


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Return a cached singleton Settings instance.

    Returns:
        The application settings, loaded from environment on first call.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
