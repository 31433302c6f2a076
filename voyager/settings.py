"""Voyager verifier runtime settings using Pydantic.

Environment-level knobs (history location, HTTP behaviour, polling cadence).
Project-level options live in ``.voyager.toml`` (see ``voyager.config``).
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VoyagerSettings(BaseSettings):
    """Central runtime configuration for the verifier."""

    model_config = SettingsConfigDict(
        env_prefix="VOYAGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # --- History ---
    history_db: Path = Field(default_factory=lambda: Path.home() / ".voyager" / "history.db")
    history_enabled: bool = True

    # --- Logging ---
    log_level: str = "WARNING"
    log_file: Optional[str] = None

    # --- HTTP ---
    api_timeout: float = 30.0
    api_max_retries: int = 3
    api_retry_delay: float = 1.0

    # --- Polling ---
    poll_interval: float = 2.0
    poll_max_attempts: int = 300

    # --- Toolchain overrides (skip probing `scarb --version`) ---
    scarb_version: Optional[str] = None
    cairo_version: Optional[str] = None


# Singleton instance
settings = VoyagerSettings()


def get_settings() -> VoyagerSettings:
    """Get global settings instance"""
    return settings


def reload_settings() -> VoyagerSettings:
    """Re-read settings from the environment"""
    global settings
    settings = VoyagerSettings()
    return settings
