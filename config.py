"""
Configuration settings for the quiz-elo-sync service.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

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

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./elosync.db",
        description="Database connection string (postgresql:// is served through asyncpg)",
    )

    # ========================================
    # Canvas API
    # ========================================
    canvas_api_url: str = Field(
        default="",
        description="Canvas base URL, e.g. https://canvas.example.edu (no trailing /api/v1)",
    )
    canvas_api_key: str = Field(
        default="",
        description="Canvas access token sent as a bearer credential",
    )
    canvas_request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for a single Canvas request",
    )
    canvas_per_page: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Page size requested from paginated Canvas endpoints",
    )

    # ========================================
    # Sync Behavior
    # ========================================
    sync_concurrency: int = Field(
        default=5,
        ge=1,
        description="Maximum concurrent quiz / submission operations per batch",
    )
    sync_interval_minutes: int = Field(
        default=45,
        ge=0,
        description="Background sync interval (0 to disable)",
    )
    sync_on_startup: bool = Field(
        default=True,
        description="Run a full sync of all courses when the service starts",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default="logs/elosync.log",
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(
        default="127.0.0.1",
        description="API server host",
    )
    api_port: int = Field(
        default=3001,
        description="API server port",
    )

    # ========================================
    # Helper Methods
    # ========================================

    def has_canvas_configured(self) -> bool:
        """Check if Canvas credentials are available."""
        return bool(self.canvas_api_url and self.canvas_api_key)

    @property
    def canvas_base_url(self) -> str:
        """Canvas URL without a trailing slash."""
        return self.canvas_api_url.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
