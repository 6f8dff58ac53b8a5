"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cb.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Cache settings loaded from environment variables.

    Optional:
        CACHE_ENABLED: Master switch; when false every cache call passes through
        CACHE_DIR: Directory holding the cache database
        CACHE_DB_NAME: File stem of the cache database
        HTTP_TIMEOUT_SECONDS: Transport timeout for image fetches
        IMAGE_FETCH_ATTEMPTS: Attempts per image fetch on transport errors
        HTTP_USER_AGENT: User-Agent sent with image fetches
        LOG_LEVEL: Logging level
        LOG_FILE: JSON-lines log file written by the CLI
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    CACHE_ENABLED: bool = Field(default=True, description="Enable the local cache")

    # Storage
    CACHE_DIR: Path = Field(default=Path(".cache"), description="Cache directory")
    CACHE_DB_NAME: str = Field(
        default="codbbitCache", description="File stem of the cache database"
    )

    # Image fetching
    HTTP_TIMEOUT_SECONDS: float = Field(
        default=30.0, gt=0.0, description="Timeout for image fetches in seconds"
    )
    IMAGE_FETCH_ATTEMPTS: int = Field(
        default=2, ge=1, le=5, description="Attempts per image fetch on transport errors"
    )
    HTTP_USER_AGENT: str = Field(
        default="codbbit-cache/0.1", description="User-Agent for image fetches"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(
        default=None, description="JSON-lines log file (console only when unset)"
    )

    @field_validator("CACHE_DB_NAME")
    @classmethod
    def validate_db_name(cls, v: str) -> str:
        """Validate that CACHE_DB_NAME is a plain file stem."""
        v = v.strip()
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("CACHE_DB_NAME must be a plain file name without separators")
        return v

    @property
    def db_path(self) -> Path:
        """Path of the SQLite file backing all stores."""
        return self.CACHE_DIR / f"{self.CACHE_DB_NAME}.db"

    def redacted_display(self) -> dict[str, str | int | float | bool | None]:
        """Return settings for display."""
        return {
            "CACHE_ENABLED": self.CACHE_ENABLED,
            "CACHE_DIR": str(self.CACHE_DIR),
            "CACHE_DB_NAME": self.CACHE_DB_NAME,
            "DB_PATH": str(self.db_path),
            "HTTP_TIMEOUT_SECONDS": self.HTTP_TIMEOUT_SECONDS,
            "IMAGE_FETCH_ATTEMPTS": self.IMAGE_FETCH_ATTEMPTS,
            "HTTP_USER_AGENT": self.HTTP_USER_AGENT,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def load_settings() -> Settings:
    """Get settings, converting validation failures to ConfigurationError.

    Raises:
        ConfigurationError: If settings are invalid.
    """
    try:
        return get_settings()
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid cache configuration",
            context={"fields": [".".join(str(p) for p in err["loc"]) for err in e.errors()]},
        ) from e


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
