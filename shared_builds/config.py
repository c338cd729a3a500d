"""Configuration settings for shared_builds.

Uses pydantic-settings for config parsing from environment variables
and defaults. Settings are resolved once at startup and treated as
immutable for the lifetime of the process.
"""

import logging
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.logging import RichHandler


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the SHARED_BUILDS_
    prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHARED_BUILDS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Cluster
    build_namespace: str = Field(
        default="shared-builds",
        min_length=1,
        description="Namespace where shared builds are created",
    )

    # Build policy
    force_rebuild: bool = Field(
        default=False,
        description="Recreate builds on every deploy regardless of status",
    )
    binary_build: bool = Field(
        default=False,
        description="Run binary builds from the local context instead of source builds",
    )
    max_image_age_days: int = Field(
        default=7,
        ge=1,
        description="Age after which a built image is considered stale",
    )

    # Waiting
    build_timeout: int = Field(
        default=30,
        ge=1,
        description="Default build completion timeout (minutes)",
    )
    poll_interval: float = Field(
        default=5.0,
        gt=0,
        description="Interval between build status polls (seconds)",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


def configure_logging(level: str = "INFO") -> None:
    """Route log records through a rich handler on the root logger."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


__all__ = ["Settings", "configure_logging", "get_settings", "print_settings_json"]
