"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """mdcollab application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/mdcollab.db"

    # GitHub mirror
    github_api_url: str = "https://api.github.com"
    github_user_agent: str = "MD-Collab-App"
    github_timeout_seconds: float = Field(default=15.0, gt=0, le=300)
    github_fetch_concurrency: int = Field(default=4, ge=1, le=32)

    # Notifications
    notification_list_limit: int = Field(default=20, ge=1, le=500)
    notification_queue_size: int = Field(default=100, ge=1)

    def validate_runtime(self) -> None:
        """Validate settings that must hold outside debug mode."""
        violations: list[str] = []
        if not self.github_user_agent.strip():
            violations.append("GITHUB_USER_AGENT must not be empty (GitHub rejects such requests)")
        if not self.debug and not self.github_api_url.startswith("https://"):
            violations.append("GITHUB_API_URL must use https in production")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Invalid configuration: {joined}")
