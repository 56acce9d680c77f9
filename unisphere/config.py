"""
Configuration settings for the Unisphere client.

Uses environment variables (prefixed ``UNISPHERE_``) with defaults that
point at a development server.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="UNISPHERE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API
    api_base_url: str = "http://192.168.0.100:5000/api"
    # None means no timeout; a hung request only blocks its own view
    api_timeout: Optional[float] = Field(default=None, gt=0)
    max_connections: int = Field(default=10, ge=1)

    # Local state
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".unisphere")
    session_db_name: str = "session.db"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Endpoint paths are joined with a leading slash."""
        return v.rstrip("/")

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @property
    def session_db_path(self) -> Path:
        """Full path to the persisted session database."""
        return self.data_dir / self.session_db_name


@lru_cache
def get_settings() -> ClientSettings:
    """Get cached settings instance."""
    return ClientSettings()
