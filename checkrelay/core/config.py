"""
Application configuration using pydantic-settings.
All environment variables are validated and typed.
"""

import os
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # GitHub installation token used for the Checks API
    github_token: str = ""
    github_api_url: str = "https://api.github.com"

    # Only checks issued by this app are considered when recovering state
    github_app_id: int | None = None

    # Travis token, sent to travis-ci.com only
    travis_token: str | None = None

    # Event coalescing
    coalesce_ceiling: int = 2

    # Log output extraction
    log_read_timeout: float = 30.0
    log_retry_count: int = 10
    log_retry_backoff: float = 3.0

    # Builds triggered by other event types are skipped (blank disables)
    required_event_type: str | None = "pull_request"

    # Pull request comment that triggers a rescan
    rescan_command: str = "/ci rescan"

    # Webhook
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 8081
    webhook_path: str = "/webhook/github"

    log_level: str = "INFO"

    @field_validator("travis_token", "required_event_type", mode="before")
    @classmethod
    def _normalize_optional(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @field_validator("github_app_id", mode="before")
    @classmethod
    def _normalize_app_id(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("coalesce_ceiling")
    @classmethod
    def _check_ceiling(cls, value: int) -> int:
        if value < 1:
            raise ValueError("coalesce_ceiling must be at least 1")
        return value

    @field_validator("log_retry_count")
    @classmethod
    def _check_retry_count(cls, value: int) -> int:
        if value < 1:
            raise ValueError("log_retry_count must be at least 1")
        return value

    @field_validator("log_read_timeout")
    @classmethod
    def _check_read_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("log_read_timeout must be positive")
        return value

    @field_validator("log_retry_backoff")
    @classmethod
    def _check_retry_backoff(cls, value: float) -> float:
        if value < 0:
            raise ValueError("log_retry_backoff must not be negative")
        return value

    model_config = {
        "env_file": os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), ".env"),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton settings instance
settings = Settings()
